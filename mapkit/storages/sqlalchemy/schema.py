import typing

from sqlalchemy import Column, MetaData, Table

from mapkit.metadata import Metadata, RelationKind
from mapkit.metadata_manager import MetadataManager
from mapkit.storages.sqlalchemy import native_type_to_column


def build_table(metadata: Metadata, sa_metadata: MetaData) -> Table:
    if metadata.table in sa_metadata.tables:
        return sa_metadata.tables[metadata.table]

    columns = []
    for field in metadata.fields.values():
        kwargs = {"primary_key": field.is_identifier, "nullable": not field.is_identifier}
        if field.is_identifier and field.type == "integer":
            kwargs["autoincrement"] = True
        columns.append(Column(field.column, native_type_to_column.convert(field.type), **kwargs))

    return Table(metadata.table, sa_metadata, *columns)


def build_join_tables(
    metadata: Metadata, metadata_manager: MetadataManager, sa_metadata: MetaData
) -> typing.List[Table]:
    tables = []
    for relation in metadata.relations.values():
        if relation.kind is not RelationKind.MANY_TO_MANY or relation.table_through in sa_metadata.tables:
            continue

        target = metadata_manager.get(relation.target_class)
        type_from = metadata.get_field(relation.key_from).type
        type_to = target.get_field(relation.key_to or target.identifier).type
        tables.append(
            Table(
                relation.table_through,
                sa_metadata,
                Column(relation.key_through_from, native_type_to_column.convert(type_from), primary_key=True),
                Column(relation.key_through_to, native_type_to_column.convert(type_to), primary_key=True),
            )
        )
    return tables


def build_schema(
    metadata_manager: MetadataManager,
    classes: typing.Iterable[typing.Type],
    sa_metadata: typing.Optional[MetaData] = None,
) -> MetaData:
    """Declares tables (and many-to-many join tables) of the given entity classes on ``sa_metadata``."""
    sa_metadata = sa_metadata if sa_metadata is not None else MetaData()
    for cls in classes:
        metadata = metadata_manager.get(cls)
        if metadata.is_mapped_superclass:
            continue
        build_table(metadata, sa_metadata)
        build_join_tables(metadata, metadata_manager, sa_metadata)
    return sa_metadata
