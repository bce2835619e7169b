from datetime import datetime

import pytest

from schemas.chat import ChatTarget


def room(name: str) -> ChatTarget:
    return ChatTarget(type="room", id=name)


def private(user_id: str) -> ChatTarget:
    return ChatTarget(type="private", id=user_id)


@pytest.mark.asyncio
async def test_public_message_reaches_everyone_logged_in(sessions, messaging, connect):
    a, ws_a = await connect("a")
    b, ws_b = await connect("b")
    alice = await sessions.login(a, "alice")
    await sessions.login(b, "bob")

    await messaging.send(a, "hi all", ChatTarget(type="public"))

    for ws in (ws_a, ws_b):
        message = ws.last("chatMessage")
        assert message["content"] == "hi all"
        assert message["from"] == alice.user_id
        assert message["fromName"] == "alice"
        assert message["room"] == "public"
        assert message["isPrivate"] is False


@pytest.mark.asyncio
async def test_room_delivery_follows_transport_group_not_member_set(sessions, messaging, connect, rooms):
    a, ws_a = await connect("a")
    b, ws_b = await connect("b")
    await sessions.login(a, "alice")
    bob = await sessions.login(b, "bob")
    await sessions.join_room(b, "dev", "")

    # Membership bookkeeping lost, transport subscription kept
    await rooms.remove_member_everywhere(bob.user_id)
    await messaging.send(a, "still there?", room("dev"))

    assert ws_b.last("chatMessage")["content"] == "still there?"
    # alice never subscribed to the group, so she gets nothing
    assert ws_a.events("chatMessage") == []


@pytest.mark.asyncio
async def test_private_message_reaches_both_parties_only(sessions, messaging, connect):
    a, ws_a = await connect("a")
    b, ws_b = await connect("b")
    c, ws_c = await connect("c")
    alice = await sessions.login(a, "alice")
    bob = await sessions.login(b, "bob")
    await sessions.login(c, "carol")

    await messaging.send(a, "psst", private(bob.user_id))

    for ws in (ws_a, ws_b):
        message = ws.last("chatMessage")
        assert message["content"] == "psst"
        assert message["to"] == bob.user_id
        assert message["from"] == alice.user_id
        assert message["isPrivate"] is True
    assert ws_c.events("chatMessage") == []


@pytest.mark.asyncio
async def test_offline_private_message_appears_in_history(sessions, messaging, connect, connections):
    b, _ = await connect("b1")
    bob = await sessions.login(b, "bob")
    connections.disconnect(b)
    await sessions.disconnect(b)

    a, ws_a = await connect("a")
    alice = await sessions.login(a, "alice")
    message = await messaging.send(a, "see you later", private(bob.user_id))

    assert message is not None
    assert ws_a.events("chatMessage") == []

    b2, ws_b2 = await connect("b2")
    await sessions.resume_session(b2, bob.session_token)
    history = await messaging.get_history(b2, private(alice.user_id))

    assert [m.content for m in history] == ["see you later"]
    payload = ws_b2.last("chatHistory")
    assert payload["chatId"] == alice.user_id
    assert payload["history"][0]["fromName"] == "alice"


@pytest.mark.asyncio
async def test_room_history_is_exact_and_ordered(sessions, messaging, connect):
    a, ws_a = await connect("a")
    await sessions.login(a, "alice")
    await sessions.join_room(a, "dev", "")
    sent = ["one", "two", "three"]
    for content in sent:
        await messaging.send(a, content, room("dev"))
    await messaging.send(a, "not here", ChatTarget(type="public"))

    history = await messaging.get_history(a, room("dev"))

    assert [m.content for m in history] == sent
    stamps = [datetime.fromisoformat(m.timestamp) for m in history]
    assert stamps == sorted(stamps)
    assert ws_a.last("chatHistory")["chatId"] == "dev"


@pytest.mark.asyncio
async def test_deleted_room_history_is_empty(sessions, messaging, connect):
    a, _ = await connect("a")
    await sessions.login(a, "admin")
    await sessions.join_room(a, "dev", "")
    await messaging.send(a, "soon gone", room("dev"))

    await sessions.delete_room(a, "dev")

    assert await messaging.get_history(a, room("dev")) == []


@pytest.mark.asyncio
async def test_history_not_emitted_to_gone_connection(sessions, messaging, connect, connections):
    a, ws_a = await connect("a")
    await sessions.login(a, "alice")
    await messaging.send(a, "hello", ChatTarget(type="public"))
    connections.disconnect(a)
    ws_a.clear()

    history = await messaging.get_history(a, ChatTarget(type="public"))

    assert [m.content for m in history] == ["hello"]
    assert ws_a.events() == []


@pytest.mark.asyncio
async def test_unauthenticated_send_is_ignored(messaging, connect, backend):
    a, ws_a = await connect("a")

    assert await messaging.send(a, "hi", ChatTarget(type="public")) is None
    assert await backend.get_room_history("public") == []
    assert ws_a.events() == []


@pytest.mark.asyncio
async def test_typing_relay(sessions, messaging, connect):
    a, ws_a = await connect("a")
    b, ws_b = await connect("b")
    alice = await sessions.login(a, "alice")
    bob = await sessions.login(b, "bob")

    await messaging.relay_typing(a, ChatTarget(type="public"), typing=True)
    assert ws_b.last("typing") == {
        "from": alice.user_id, "fromName": "alice", "target": {"type": "public", "id": "public"},
    }
    assert ws_a.events("typing") == []

    await messaging.relay_typing(a, private(bob.user_id), typing=False)
    assert ws_b.last("stopTyping")["target"] == {"type": "private", "id": alice.user_id}
