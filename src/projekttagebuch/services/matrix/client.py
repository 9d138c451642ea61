"""
MatrixClient - room adapter for the Matrix client-server API (v3).

The service account logs in with a password and manages one private room per
project. Users are never stored on the Matrix side: the user id of a person
is derived from the person's name and the configured servername.

Membership operations are idempotent, so an action can be retried after a
partial failure without creating duplicate invites or kicks:

    ensure_member_present: join/invite -> nothing, ban -> MemberBanned,
                           leave/knock/none -> invite
    ensure_member_absent:  join/invite -> kick, leave/ban/knock/none -> nothing

Usage:
    rooms = MatrixClient.from_settings()
    await rooms.login()
    room_id = await rooms.create_room("1Basil", [adam])
    await rooms.ensure_member_present(room_id, beth)
    await rooms.close()
"""

import asyncio
from typing import Any, Iterable, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from ...models import Person
from .errors import (
    MatrixAuthError,
    MatrixRequestError,
    MemberBanned,
    RoomNotFound,
    UnknownMembershipState,
)

CLIENT_API = "/_matrix/client/v3"

PRESENT_STATES = {"join", "invite"}
ABSENT_STATES = {"leave", "ban", "knock"}


def _quote(value: str) -> str:
    return quote(value, safe="")


class MatrixClient:
    """Room service adapter used by project actions."""

    def __init__(
        self,
        homeserver_url: str,
        servername: str,
        username: str,
        password: str,
        element_servername: str | None = None,
        request_timeout: float = 30.0,
        kick_reason: str = "projekttagebuch Automatisierung",
        http_client: Optional[httpx.AsyncClient] = None,
        access_token: str | None = None,
    ):
        self.homeserver_url = homeserver_url.rstrip("/")
        self.servername = servername
        self.element_servername = element_servername or servername
        self.username = username
        self.password = password
        self.kick_reason = kick_reason
        self._http = http_client or httpx.AsyncClient(
            base_url=self.homeserver_url, timeout=request_timeout
        )
        self._access_token = access_token
        # Sync cursor; only moves forward and only under the lock
        self._since: str | None = None
        self._sync_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None) -> "MatrixClient":
        from ...settings import settings

        return cls(
            homeserver_url=settings.matrix.homeserver_url,
            servername=settings.matrix.servername,
            element_servername=settings.matrix.element_servername,
            username=settings.matrix.username,
            password=settings.matrix.password,
            request_timeout=settings.matrix.request_timeout,
            kick_reason=settings.matrix.kick_reason,
            http_client=http_client,
        )

    @property
    def since(self) -> str | None:
        return self._since

    @property
    def logged_in(self) -> bool:
        return self._access_token is not None

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        headers = {}
        if authenticated:
            if self._access_token is None:
                await self.login()
            headers["Authorization"] = f"Bearer {self._access_token}"

        try:
            response = await self._http.request(
                method, f"{CLIENT_API}{path}", json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            raise MatrixRequestError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            raise MatrixAuthError(
                f"{method} {path} was rejected: {_error_message(response)}",
                status=401,
                errcode=_errcode(response),
            )
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str) -> None:
        if response.is_success:
            return
        raise MatrixRequestError(
            f"Unable to {what}: {_error_message(response)}",
            status=response.status_code,
            errcode=_errcode(response),
        )

    # =========================================================================
    # SESSION
    # =========================================================================

    async def login(self) -> None:
        """Log the service account in with its password."""
        logger.info(f"Logging in to {self.homeserver_url} as {self.username}")
        response = await self._request(
            "POST",
            "/login",
            json={
                "type": "m.login.password",
                "identifier": {"type": "m.id.user", "user": self.username},
                "password": self.password,
                "initial_device_display_name": "projekttagebuch",
            },
            authenticated=False,
        )
        if response.status_code in (401, 403):
            raise MatrixAuthError(
                f"Unable to log in as {self.username}: {_error_message(response)}",
                status=response.status_code,
                errcode=_errcode(response),
            )
        what = f"log in as {self.username}"
        self._raise_for_status(response, what)
        self._access_token = _json(response, what, "access_token")["access_token"]
        logger.info(f"Logged in to {self.homeserver_url} as {self.username}")

    async def close(self) -> None:
        await self._http.aclose()

    async def sync(self) -> None:
        """Sync once and move the cursor forward on success."""
        async with self._sync_lock:
            params: dict[str, Any] = {"timeout": 0}
            if self._since:
                params["since"] = self._since
            response = await self._request("GET", "/sync", params=params)
            self._raise_for_status(response, "sync from the Matrix server")
            body = _json(response, "sync from the Matrix server")
            self._since = body.get("next_batch", self._since)
            logger.trace(f"Synced, next batch {self._since}")

    # =========================================================================
    # ROOMS
    # =========================================================================

    def user_id_for(self, person: Person) -> str:
        return f"@{person.name}:{self.servername}"

    def room_link(self, room_id: str) -> str:
        return f"https://{self.element_servername}/#/room/{room_id}"

    async def create_room(self, name: str, candidate_members: Iterable[Person]) -> str:
        """Create a private room named after the project, inviting every candidate."""
        invite = [self.user_id_for(p) for p in candidate_members]
        response = await self._request(
            "POST",
            "/createRoom",
            json={"name": name, "invite": invite, "preset": "private_chat"},
        )
        self._raise_for_status(response, f"create room for {name}")
        room_id = _json(response, f"create room for {name}", "room_id")["room_id"]
        logger.info(f"Created room {room_id} for {name}, invited {', '.join(invite) or 'nobody'}")
        return room_id

    async def rename_room(self, room_id: str, new_name: str) -> None:
        response = await self._request(
            "PUT",
            f"/rooms/{_quote(room_id)}/state/m.room.name",
            json={"name": new_name},
        )
        if response.status_code == 404:
            raise RoomNotFound(room_id)
        self._raise_for_status(response, f"rename room {room_id}")
        logger.debug(f"Renamed room {room_id} to {new_name}")

    async def membership_of(self, room_id: str, person: Person) -> str | None:
        """Current membership of person in room_id, None when they never had one."""
        user_id = self.user_id_for(person)
        response = await self._request(
            "GET",
            f"/rooms/{_quote(room_id)}/state/m.room.member/{_quote(user_id)}",
        )
        if response.status_code == 404:
            if _errcode(response) == "M_NOT_FOUND":
                return None
            raise RoomNotFound(room_id)
        what = f"check membership of {user_id} in {room_id}"
        self._raise_for_status(response, what)
        return _json(response, what).get("membership")

    async def ensure_member_present(self, room_id: str, person: Person) -> None:
        """Make sure person is joined or invited. Invites at most once."""
        await self.sync()
        user_id = self.user_id_for(person)
        membership = await self.membership_of(room_id, person)

        if membership in PRESENT_STATES:
            logger.debug(f"{user_id} is already {membership} in {room_id}")
            return
        if membership == "ban":
            raise MemberBanned(user_id, room_id)
        if membership is not None and membership not in ABSENT_STATES:
            raise UnknownMembershipState(user_id, room_id, membership)

        response = await self._request(
            "POST", f"/rooms/{_quote(room_id)}/invite", json={"user_id": user_id}
        )
        if response.status_code == 404:
            raise RoomNotFound(room_id)
        self._raise_for_status(response, f"invite {user_id} to {room_id}")
        logger.debug(f"Invited {user_id} to {room_id}")

    async def ensure_member_absent(self, room_id: str, person: Person) -> None:
        """Make sure person is neither joined nor invited. Kicks at most once."""
        await self.sync()
        user_id = self.user_id_for(person)
        membership = await self.membership_of(room_id, person)

        if membership is None or membership in ABSENT_STATES:
            logger.debug(f"{user_id} is not in {room_id} ({membership or 'no membership'})")
            return
        if membership not in PRESENT_STATES:
            raise UnknownMembershipState(user_id, room_id, membership)

        # Kicking an invited user retracts the invite
        response = await self._request(
            "POST",
            f"/rooms/{_quote(room_id)}/kick",
            json={"user_id": user_id, "reason": self.kick_reason},
        )
        if response.status_code == 404:
            raise RoomNotFound(room_id)
        self._raise_for_status(response, f"kick {user_id} from {room_id}")
        logger.debug(f"Kicked {user_id} from {room_id}")


def _json(response: httpx.Response, what: str, *required: str) -> dict[str, Any]:
    """JSON object of a successful response; MatrixRequestError when it is malformed."""
    try:
        body = response.json()
    except ValueError as e:
        raise MatrixRequestError(
            f"Unable to {what}: response is not JSON", status=response.status_code
        ) from e
    if not isinstance(body, dict):
        raise MatrixRequestError(
            f"Unable to {what}: expected a JSON object", status=response.status_code
        )
    missing = [key for key in required if not isinstance(body.get(key), str)]
    if missing:
        raise MatrixRequestError(
            f"Unable to {what}: response has no {', '.join(missing)}",
            status=response.status_code,
        )
    return body


def _errcode(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("errcode") if isinstance(body, dict) else None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return f"HTTP {response.status_code}"
    return f"HTTP {response.status_code} {body.get('errcode', '')}: {body.get('error', '')}".strip()
