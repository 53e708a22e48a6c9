import logging
import threading
import typing

from mapkit.loader import AttributeLoader, Loader
from mapkit.metadata import MappingError, Metadata


logger = logging.getLogger(__name__)


class MetadataManager:
    """Builds :class:`Metadata` through a loader once per class and keeps it for the process lifetime.

    Metadata never changes after it is built, so one manager may be shared by entity managers
    living on different threads.
    """

    def __init__(self, loader: typing.Optional[Loader] = None) -> None:
        self._loader = loader or AttributeLoader()
        self._metadata: typing.Dict[typing.Type, Metadata] = {}
        self._lock = threading.RLock()

    @property
    def loader(self) -> Loader:
        return self._loader

    def has(self, cls: typing.Type) -> bool:
        return cls in self._metadata

    def is_transient(self, cls: typing.Type) -> bool:
        return self._loader.is_transient(cls)

    def get(self, cls_or_entity: typing.Any) -> Metadata:
        cls = cls_or_entity if isinstance(cls_or_entity, type) else type(cls_or_entity)

        metadata = self._metadata.get(cls)
        if metadata is not None:
            return metadata

        with self._lock:
            if cls not in self._metadata:
                self._metadata[cls] = self._build(cls)
            return self._metadata[cls]

    def clear(self) -> None:
        with self._lock:
            self._metadata.clear()

    def _build(self, cls: typing.Type) -> Metadata:
        if self._loader.is_transient(cls):
            raise MappingError(f"No entity marker found for class {cls.__module__}.{cls.__qualname__}")

        config: typing.Dict[str, typing.Any] = {}
        for parent in reversed(cls.__mro__[1:]):
            if self._loader.is_transient(parent):
                continue
            config = self._loader.load(parent, config)
            for mapping in (*config["fields"].values(), *config["relations"].values()):
                mapping["inherited"] = True

        metadata = Metadata.from_config(cls, self._loader.load(cls, config))
        logger.debug(
            "Built metadata for %s: table=%s, %d fields, %d relations",
            cls.__qualname__,
            metadata.table,
            len(metadata.fields),
            len(metadata.relations),
        )
        return metadata
