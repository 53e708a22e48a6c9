from mapkit.entity import (
    Entity,
    Identity,
    belongs_to,
    column,
    has_many,
    has_one,
    listens_to,
    many_to_many,
    post_create,
    post_delete,
    post_load,
    post_save,
    post_update,
    pre_create,
    pre_delete,
    pre_save,
    pre_update,
    transient,
)
from mapkit.events import EntityEvent, EventDispatcher, Events
from mapkit.manager import EntityManager, EntityState, InvalidEntityState
from mapkit.metadata import MappingError, Metadata
from mapkit.metadata_manager import MetadataManager
from mapkit.repository import Repository
