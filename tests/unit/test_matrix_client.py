"""
Tests for MatrixClient against a mocked homeserver (httpx.MockTransport).
"""

import json
from urllib.parse import unquote

import httpx
import pytest

from projekttagebuch.models import Identity, Person
from projekttagebuch.services.matrix import (
    MatrixAuthError,
    MatrixClient,
    MatrixRequestError,
    MemberBanned,
    RoomNotFound,
    UnknownMembershipState,
)

ROOM = "!basil:example.org"


class Homeserver:
    """Just enough of the client-server API for the room adapter."""

    def __init__(self):
        self.memberships: dict[str, str] = {}
        self.room_names: dict[str, str] = {ROOM: "1Basil"}
        self.requests: list[tuple[str, str]] = []
        self.sync_params: list[dict] = []
        self.batch = 0
        self.fail_sync = False
        # path -> canned response, used before the normal handling
        self.replies: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = unquote(request.url.path).removeprefix("/_matrix/client/v3")
        self.requests.append((request.method, path))
        if path in self.replies:
            return self.replies[path]
        body = json.loads(request.content) if request.content else {}

        if path == "/login":
            if body.get("password") != "secret":
                return httpx.Response(403, json={"errcode": "M_FORBIDDEN", "error": "Invalid password"})
            return httpx.Response(200, json={"access_token": "tok", "user_id": "@ptb:example.org"})

        if request.headers.get("Authorization") != "Bearer tok":
            return httpx.Response(401, json={"errcode": "M_UNKNOWN_TOKEN", "error": "Unknown token"})

        if path == "/sync":
            if self.fail_sync:
                return httpx.Response(502)
            self.sync_params.append(dict(request.url.params))
            self.batch += 1
            return httpx.Response(200, json={"next_batch": f"s{self.batch}"})

        if path == "/createRoom":
            room_id = "!new:example.org"
            self.room_names[room_id] = body["name"]
            for user_id in body.get("invite", []):
                self.memberships[user_id] = "invite"
            return httpx.Response(200, json={"room_id": room_id})

        room_id = path.split("/")[2]
        if room_id not in self.room_names:
            return httpx.Response(404, json={"errcode": "M_UNKNOWN", "error": "Unknown room"})

        if path.endswith("/state/m.room.name"):
            self.room_names[room_id] = body["name"]
            return httpx.Response(200, json={"event_id": "$name"})
        if "/state/m.room.member/" in path:
            user_id = path.rsplit("/", 1)[1]
            if user_id not in self.memberships:
                return httpx.Response(404, json={"errcode": "M_NOT_FOUND", "error": "Event not found"})
            return httpx.Response(200, json={"membership": self.memberships[user_id]})
        if path.endswith("/invite"):
            self.memberships[body["user_id"]] = "invite"
            return httpx.Response(200, json={})
        if path.endswith("/kick"):
            assert body["reason"] == "projekttagebuch Automatisierung"
            self.memberships[body["user_id"]] = "leave"
            return httpx.Response(200, json={})
        return httpx.Response(404, json={"errcode": "M_UNRECOGNIZED"})

    def count(self, suffix: str) -> int:
        return sum(1 for _, path in self.requests if path.endswith(suffix))


@pytest.fixture
def homeserver():
    return Homeserver()


@pytest.fixture
async def client(homeserver):
    http = httpx.AsyncClient(
        base_url="https://matrix.example.org",
        transport=httpx.MockTransport(homeserver.handler),
    )
    client = MatrixClient(
        homeserver_url="https://matrix.example.org",
        servername="example.org",
        element_servername="chat.example.org",
        username="ptb",
        password="secret",
        http_client=http,
    )
    yield client
    await client.close()


@pytest.fixture
def beth():
    return Person(identity=Identity.stored(2), name="beth")


class TestSession:
    def test_user_id_and_room_link(self, client, beth):
        assert client.user_id_for(beth) == "@beth:example.org"
        assert client.room_link(ROOM) == "https://chat.example.org/#/room/!basil:example.org"

    @pytest.mark.asyncio
    async def test_login(self, client):
        await client.login()
        assert client.logged_in

    @pytest.mark.asyncio
    async def test_wrong_password(self, client):
        client.password = "wrong"
        with pytest.raises(MatrixAuthError) as exc_info:
            await client.login()
        assert exc_info.value.status == 403
        assert exc_info.value.errcode == "M_FORBIDDEN"

    @pytest.mark.asyncio
    async def test_first_request_logs_in(self, client, homeserver):
        await client.sync()
        assert homeserver.requests[0] == ("POST", "/login")

    @pytest.mark.asyncio
    async def test_sync_cursor_moves_forward(self, client, homeserver):
        assert client.since is None
        await client.sync()
        await client.sync()

        assert "since" not in homeserver.sync_params[0]
        assert homeserver.sync_params[1]["since"] == "s1"
        assert client.since == "s2"

    @pytest.mark.asyncio
    async def test_failed_sync_keeps_cursor(self, client, homeserver):
        await client.sync()
        homeserver.fail_sync = True

        with pytest.raises(MatrixRequestError) as exc_info:
            await client.sync()
        assert exc_info.value.status == 502
        assert client.since == "s1"


@pytest.mark.asyncio
class TestRooms:
    async def test_create_room_invites_candidates(self, client, homeserver, beth):
        room_id = await client.create_room("3Basil", [beth])

        assert room_id == "!new:example.org"
        assert homeserver.room_names[room_id] == "3Basil"
        assert homeserver.memberships["@beth:example.org"] == "invite"

    async def test_rename_room(self, client, homeserver):
        await client.rename_room(ROOM, "1Thyme")
        assert homeserver.room_names[ROOM] == "1Thyme"

    async def test_rename_unknown_room(self, client):
        with pytest.raises(RoomNotFound):
            await client.rename_room("!gone:example.org", "x")


@pytest.mark.asyncio
class TestEnsureMemberPresent:
    async def test_invites_when_never_in_room(self, client, homeserver, beth):
        await client.ensure_member_present(ROOM, beth)

        assert homeserver.memberships["@beth:example.org"] == "invite"
        assert homeserver.count("/invite") == 1

    async def test_twice_in_a_row_invites_once(self, client, homeserver, beth):
        await client.ensure_member_present(ROOM, beth)
        await client.ensure_member_present(ROOM, beth)

        assert homeserver.count("/invite") == 1

    @pytest.mark.parametrize("membership", ["join", "invite"])
    async def test_already_present(self, client, homeserver, beth, membership):
        homeserver.memberships["@beth:example.org"] = membership
        await client.ensure_member_present(ROOM, beth)
        assert homeserver.count("/invite") == 0

    @pytest.mark.parametrize("membership", ["leave", "knock"])
    async def test_reinvites_after_leave_or_knock(self, client, homeserver, beth, membership):
        homeserver.memberships["@beth:example.org"] = membership
        await client.ensure_member_present(ROOM, beth)
        assert homeserver.memberships["@beth:example.org"] == "invite"

    async def test_banned(self, client, homeserver, beth):
        homeserver.memberships["@beth:example.org"] = "ban"
        with pytest.raises(MemberBanned):
            await client.ensure_member_present(ROOM, beth)
        assert homeserver.count("/invite") == 0

    async def test_unknown_membership(self, client, homeserver, beth):
        homeserver.memberships["@beth:example.org"] = "haunting"
        with pytest.raises(UnknownMembershipState) as exc_info:
            await client.ensure_member_present(ROOM, beth)
        assert exc_info.value.membership == "haunting"

    async def test_syncs_before_reading_state(self, client, homeserver, beth):
        await client.ensure_member_present(ROOM, beth)
        paths = [p for _, p in homeserver.requests]
        assert paths.index("/sync") < next(i for i, p in enumerate(paths) if "m.room.member" in p)


@pytest.mark.asyncio
class TestEnsureMemberAbsent:
    @pytest.mark.parametrize("membership", ["join", "invite"])
    async def test_kicks_present_member(self, client, homeserver, beth, membership):
        homeserver.memberships["@beth:example.org"] = membership
        await client.ensure_member_absent(ROOM, beth)

        assert homeserver.memberships["@beth:example.org"] == "leave"
        assert homeserver.count("/kick") == 1

    @pytest.mark.parametrize("membership", ["leave", "ban", "knock", None])
    async def test_already_absent(self, client, homeserver, beth, membership):
        if membership:
            homeserver.memberships["@beth:example.org"] = membership
        await client.ensure_member_absent(ROOM, beth)
        assert homeserver.count("/kick") == 0

    async def test_unknown_membership(self, client, homeserver, beth):
        homeserver.memberships["@beth:example.org"] = "haunting"
        with pytest.raises(UnknownMembershipState):
            await client.ensure_member_absent(ROOM, beth)

    async def test_network_error(self, beth):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        client = MatrixClient(
            homeserver_url="https://matrix.example.org",
            servername="example.org",
            username="ptb",
            password="secret",
            http_client=httpx.AsyncClient(
                base_url="https://matrix.example.org", transport=httpx.MockTransport(refuse)
            ),
            access_token="tok",
        )
        with pytest.raises(MatrixRequestError):
            await client.ensure_member_absent(ROOM, beth)
        await client.close()


@pytest.mark.asyncio
class TestMalformedReplies:
    async def test_login_without_access_token(self, client, homeserver):
        homeserver.replies["/login"] = httpx.Response(200, json={"user_id": "@ptb:example.org"})

        with pytest.raises(MatrixRequestError) as exc_info:
            await client.login()
        assert "access_token" in str(exc_info.value)
        assert not client.logged_in

    async def test_sync_with_html_body_keeps_cursor(self, client, homeserver):
        await client.sync()
        homeserver.replies["/sync"] = httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(MatrixRequestError) as exc_info:
            await client.sync()
        assert exc_info.value.status == 200
        assert client.since == "s1"

    async def test_create_room_without_room_id(self, client, homeserver, beth):
        homeserver.replies["/createRoom"] = httpx.Response(200, json={})

        with pytest.raises(MatrixRequestError):
            await client.create_room("3Basil", [beth])

    async def test_membership_that_is_not_an_object(self, client, homeserver, beth):
        path = f"/rooms/{ROOM}/state/m.room.member/@beth:example.org"
        homeserver.replies[path] = httpx.Response(200, json=["join"])

        with pytest.raises(MatrixRequestError):
            await client.ensure_member_present(ROOM, beth)
        assert homeserver.count("/invite") == 0
