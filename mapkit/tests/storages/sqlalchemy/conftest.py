from typing import Generator

import pytest
from sqlalchemy import MetaData
from sqlalchemy.engine import Connection as SaConnection, Engine

from mapkit.events import EventDispatcher
from mapkit.metadata_manager import MetadataManager
from mapkit.storages.sqlalchemy import SqlAlchemyConnection, build_schema
from mapkit.tests import models


@pytest.fixture()
def sa_metadata(metadata_manager: MetadataManager) -> MetaData:
    return build_schema(metadata_manager, models.ALL)


@pytest.fixture()
def sa_connection(engine: Engine, sa_metadata: MetaData) -> Generator[SaConnection, None, None]:
    with engine.connect() as connection:
        sa_metadata.create_all(connection)
        yield connection
        connection.rollback()


@pytest.fixture()
def connection(sa_connection: SaConnection, events: EventDispatcher, sa_metadata: MetaData) -> SqlAlchemyConnection:
    return SqlAlchemyConnection(sa_connection, events, sa_metadata)
