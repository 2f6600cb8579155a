"""Remote accounts and meeting rows on a Supabase-style backend (PostgREST + GoTrue)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from mindscribe.models import Meeting, normalize_meeting
from mindscribe.services.config import RemoteSettings


class RemoteStoreError(RuntimeError):
    pass


class RemoteAuthError(RemoteStoreError):
    pass


@dataclass(frozen=True)
class UserSession:
    user_id: str
    email: str
    access_token: str
    name: Optional[str] = None

    def to_public_dict(self) -> dict:
        return {"userId": self.user_id, "email": self.email, "name": self.name}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {response.status_code}"


class _RemoteClient:
    def __init__(
        self,
        settings: RemoteSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self._settings.is_configured()

    def _headers(self, access_token: Optional[str] = None) -> dict:
        return {
            "apikey": self._settings.anon_key,
            "Authorization": f"Bearer {access_token or self._settings.anon_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        if not self.is_configured:
            raise RemoteStoreError("Remote store is not configured")
        headers = self._headers(access_token)
        headers.update(kwargs.pop("headers", {}))
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.url.rstrip("/"),
                transport=self._transport,
                timeout=self._timeout,
            ) as client:
                response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"Remote store unreachable: {exc}") from exc
        if response.status_code in (401, 403):
            raise RemoteAuthError(_error_message(response))
        if response.status_code >= 400:
            raise RemoteStoreError(_error_message(response))
        return response


class RemoteMeetingStore(_RemoteClient):
    """Meeting rows in the remote ``meetings`` table, always filtered by user."""

    def __init__(self, settings: RemoteSettings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(settings, transport)
        self._logger = logging.getLogger("mindscribe.meetings.remote")

    async def insert(self, meeting: Meeting, session: UserSession) -> None:
        row = meeting.to_row()
        row["user_id"] = session.user_id
        await self._request(
            "POST",
            "/rest/v1/meetings",
            access_token=session.access_token,
            json=row,
            headers={"Prefer": "return=minimal"},
        )
        self._logger.info("Meeting saved remotely: id=%s user=%s", meeting.id, session.user_id)

    async def get(self, meeting_id: str, session: UserSession) -> Optional[Meeting]:
        response = await self._request(
            "GET",
            "/rest/v1/meetings",
            access_token=session.access_token,
            params={
                "select": "*",
                "id": f"eq.{meeting_id}",
                "user_id": f"eq.{session.user_id}",
            },
        )
        rows = response.json()
        if not rows:
            return None
        return normalize_meeting(rows[0])

    async def list(self, session: UserSession) -> list[Meeting]:
        response = await self._request(
            "GET",
            "/rest/v1/meetings",
            access_token=session.access_token,
            params={
                "select": "*",
                "user_id": f"eq.{session.user_id}",
                "order": "created_at.desc",
            },
        )
        meetings = []
        for row in response.json():
            try:
                meetings.append(normalize_meeting(row))
            except ValueError as exc:
                self._logger.warning("Skipping malformed remote meeting row: %s", exc)
        return meetings


class AuthService(_RemoteClient):
    """Email/password accounts. Holds the one signed-in session for this process."""

    def __init__(self, settings: RemoteSettings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(settings, transport)
        self._session: Optional[UserSession] = None
        self._logger = logging.getLogger("mindscribe.auth")

    def current_session(self) -> Optional[UserSession]:
        return self._session

    @staticmethod
    def _session_from(data: dict, fallback_name: Optional[str] = None) -> UserSession:
        user = data.get("user") or {}
        token = data.get("access_token")
        if not token or not user.get("id"):
            raise RemoteAuthError("Authentication response did not include a session")
        metadata = user.get("user_metadata") or {}
        return UserSession(
            user_id=str(user["id"]),
            email=str(user.get("email", "")),
            access_token=str(token),
            name=metadata.get("name") or fallback_name,
        )

    async def sign_in(self, email: str, password: str) -> UserSession:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._session = self._session_from(response.json())
        self._logger.info("Signed in: user=%s", self._session.user_id)
        return self._session

    async def sign_up(self, email: str, password: str, name: Optional[str] = None) -> Optional[UserSession]:
        """Create an account. Returns None when the backend requires email confirmation first."""
        response = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"name": name or ""}},
        )
        data = response.json()
        if not data.get("access_token"):
            self._logger.info("Sign-up pending confirmation: email=%s", email)
            return None
        self._session = self._session_from(data, fallback_name=name)
        self._logger.info("Signed up: user=%s", self._session.user_id)
        return self._session

    async def sign_out(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await self._request("POST", "/auth/v1/logout", access_token=session.access_token)
        except RemoteStoreError as exc:
            self._logger.warning("Remote sign-out failed (session dropped locally): %s", exc)
        self._logger.info("Signed out: user=%s", session.user_id)
