import pytest

from errors import UsernameTaken
from schemas.chat import User


def make_user(connection_id: str, name: str, user_id: str = None) -> User:
    return User(
        connection_id=connection_id,
        display_name=name,
        user_id=user_id or f"user-{connection_id}",
        session_token=f"token-{connection_id}",
    )


@pytest.mark.asyncio
async def test_register_rejects_duplicate_names(presence):
    await presence.register(make_user("c1", "alice"))

    with pytest.raises(UsernameTaken) as exc:
        await presence.register(make_user("c2", "alice"))

    assert exc.value.message == "Username is already taken."
    assert await presence.get("c2") is None


@pytest.mark.asyncio
async def test_uniqueness_is_case_sensitive(presence):
    await presence.register(make_user("c1", "alice"))
    await presence.register(make_user("c2", "Alice"))

    assert len(await presence.snapshot()) == 2


@pytest.mark.asyncio
async def test_upsert_evicting_replaces_stale_connection(presence):
    await presence.register(make_user("old", "alice", user_id="u1"))

    evicted = await presence.upsert_evicting(make_user("new", "alice", user_id="u1"))

    assert evicted == ["old"]
    assert await presence.get("old") is None
    assert (await presence.find_by_user_id("u1")).connection_id == "new"


@pytest.mark.asyncio
async def test_upsert_same_connection_evicts_nothing(presence):
    await presence.register(make_user("c1", "alice"))

    assert await presence.upsert_evicting(make_user("c1", "alice")) == []


@pytest.mark.asyncio
async def test_remove_and_public_list(presence):
    await presence.register(make_user("c1", "alice"))
    await presence.register(make_user("c2", "bob"))

    removed = await presence.remove("c1")
    assert removed.display_name == "alice"
    assert await presence.remove("c1") is None

    listed = await presence.public_list()
    assert listed == [{"id": "c2", "name": "bob", "userId": "user-c2", "isAdmin": False}]
