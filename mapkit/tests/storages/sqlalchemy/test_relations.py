import typing

import pytest
import sqlalchemy as sa

from mapkit import EntityManager
from mapkit.metadata_manager import MetadataManager
from mapkit.storages.sqlalchemy import SqlAlchemyConnection
from mapkit.tests.models import Post, Profile, Tag, User


@pytest.fixture()
def seeded(manager: EntityManager, sa_connection, sa_metadata: sa.MetaData) -> None:
    for name in ("ann", "bob", "cid"):
        manager.save(User(name=name))
    manager.save(Profile(user_id=1, bio="ann's profile"))
    for user_id, title in ((1, "Alpha"), (1, "Beta"), (2, "Gamma")):
        manager.save(Post(user_id=user_id, title=title))
    for name in ("python", "orm", "sql"):
        manager.save(Tag(name=name))
    sa_connection.execute(
        sa_metadata.tables["post_tags"].insert(),
        [{"post_id": 1, "tag_id": 1}, {"post_id": 1, "tag_id": 2}, {"post_id": 2, "tag_id": 2}],
    )


@pytest.fixture()
def loader(seeded: None, connection: SqlAlchemyConnection, metadata_manager: MetadataManager) -> EntityManager:
    return EntityManager(connection, metadata_manager)


@pytest.fixture()
def statements(loader: EntityManager, sa_connection) -> typing.Generator[typing.List[str], None, None]:
    executed: typing.List[str] = []

    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany) -> None:
        executed.append(statement)

    sa.event.listen(sa_connection, "before_cursor_execute", before_cursor_execute)
    yield executed
    sa.event.remove(sa_connection, "before_cursor_execute", before_cursor_execute)


def users(loader: EntityManager, *relations: str, **constraints) -> typing.List[User]:
    return loader.get_repository(User).query().related(*relations, **constraints).order_by("id").get()


def posts(loader: EntityManager, *relations: str) -> typing.List[Post]:
    return loader.get_repository(Post).query().related(*relations).order_by("id").get()


def test_has_many_is_ordered(loader: EntityManager) -> None:
    ann, bob, cid = users(loader, "posts")

    assert [post.title for post in ann.posts] == ["Beta", "Alpha"]
    assert [post.title for post in bob.posts] == ["Gamma"]
    assert cid.posts == []


def test_has_one(loader: EntityManager) -> None:
    ann, bob, _ = users(loader, "profile")

    assert ann.profile.bio == "ann's profile"
    assert bob.profile is None


def test_belongs_to_shares_instances(loader: EntityManager) -> None:
    alpha, beta, gamma = posts(loader, "author")

    assert alpha.author.name == "ann"
    assert alpha.author is beta.author
    assert gamma.author.name == "bob"


def test_many_to_many(loader: EntityManager) -> None:
    alpha, beta, gamma = posts(loader, "tags")

    assert [tag.name for tag in alpha.tags] == ["orm", "python"]
    assert beta.tags == [alpha.tags[0]]
    assert beta.tags[0] is alpha.tags[0]
    assert gamma.tags == []


def test_relations_are_loaded_once_per_parent_set(loader: EntityManager, statements: typing.List[str]) -> None:
    users(loader, "posts", "profile")

    assert len(statements) == 3

    del statements[:]
    posts(loader, "tags")

    assert len(statements) == 3
    assert "post_tags" in statements[1]


def test_related_constraint(loader: EntityManager) -> None:
    ann, bob, _ = users(loader, posts=lambda query: query.where(title="Alpha"))

    assert [post.title for post in ann.posts] == ["Alpha"]
    assert bob.posts == []


def test_join_paths_share_identity(loader: EntityManager) -> None:
    ann, _, _ = users(loader, "posts")

    loader.related(ann.posts, "author", loader.get_repository(User).query())

    assert all(post.author is ann for post in ann.posts)


def test_related_on_empty_set_does_nothing(loader: EntityManager, statements: typing.List[str]) -> None:
    loader.related([], "posts", loader.get_repository(Post).query())

    assert statements == []


def test_unloaded_relation_keeps_default(loader: EntityManager) -> None:
    (alpha, *_) = posts(loader)

    assert alpha.author is None
    assert alpha.tags == []


def test_query_filters(loader: EntityManager) -> None:
    repository = loader.get_repository(User)
    query = repository.query()

    assert [user.name for user in query.where(query.column("id") > 1).get()] == ["bob", "cid"]
    assert [user.name for user in repository.query().where_in("name", ["ann", "cid"]).order_by("id").get()] == [
        "ann",
        "cid",
    ]
    assert repository.where(name="bob").first().id == 2
    assert repository.where(name="dan").first() is None


def test_query_paging(loader: EntityManager) -> None:
    query = loader.get_repository(User).query().order_by("name", "desc")

    assert [user.name for user in query.limit(2).offset(1).get()] == ["bob", "ann"]


def test_query_count(loader: EntityManager) -> None:
    repository = loader.get_repository(Post)

    assert repository.count() == 3
    assert repository.where(user_id=1).order_by("title").count() == 2
