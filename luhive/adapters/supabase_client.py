"""Supabase client handle: PostgREST and GoTrue over httpx.

Handles are passed explicitly into every store; there is no ambient global.
Two contexts exist and are enforced when the handle is built:

- USER: request-scoped, anon key + the caller's session token. Built per
  request from the session cookie and closed when the request ends.
- SERVICE: process-scoped, service-role key, never carries a user session.
  Built lazily once per process by get_service_client().
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Any

import httpx

from luhive.core.errors import ClientContextError
from luhive.data.models import AuthUser
from luhive.ports.store_port import BackendError

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 10


class ClientContext(str, Enum):
    USER = "user"
    SERVICE = "service"


class SupabaseClient:
    """Thin async client for one Supabase project in one context."""

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        context: ClientContext = ClientContext.USER,
        access_token: str | None = None,
        service_role_key: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not api_key:
            raise ClientContextError("Supabase URL and API key are required")
        if context is ClientContext.SERVICE and access_token:
            raise ClientContextError("Service-role client cannot carry a user session")
        if context is ClientContext.USER and service_role_key and api_key == service_role_key:
            raise ClientContextError("User client cannot be built with the service-role key")

        self._url = url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self.context = context

    # -- construction ------------------------------------------------------

    @classmethod
    def for_session(
        cls,
        access_token: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SupabaseClient:
        """Request-scoped client acting as the session's user (or anon)."""
        from luhive.config import settings

        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            context=ClientContext.USER,
            access_token=access_token,
            service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            transport=transport,
        )

    @classmethod
    def service(cls, transport: httpx.AsyncBaseTransport | None = None) -> SupabaseClient:
        from luhive.config import settings

        if not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise ClientContextError("SUPABASE_SERVICE_ROLE_KEY is not set")
        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            context=ClientContext.SERVICE,
            transport=transport,
        )

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._url,
                timeout=_TIMEOUT_SECONDS,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token or self._api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _require_user_context(self, operation: str) -> None:
        if self.context is not ClientContext.USER:
            raise ClientContextError(f"{operation} requires a user session client")

    # -- errors ------------------------------------------------------------

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or resp.reason_phrase
            or f"HTTP {resp.status_code}"
        )
        raise BackendError(
            str(message),
            code=str(body["code"]) if body.get("code") is not None else None,
            details=body.get("details"),
            status=resp.status_code,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client().request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Supabase %s %s failed: %s", method, path, exc)
            raise BackendError(f"Backend unreachable: {exc}") from exc
        self._raise_for_error(resp)
        return resp

    # -- PostgREST ---------------------------------------------------------

    @staticmethod
    def _filters(filters: dict[str, Any]) -> dict[str, str]:
        params = {}
        for column, value in filters.items():
            if value is None:
                params[column] = "is.null"
            elif isinstance(value, bool):
                params[column] = f"eq.{str(value).lower()}"
            else:
                params[column] = f"eq.{value}"
        return params

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        params = self._filters(filters or {})
        params["select"] = columns
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        resp = await self._request("GET", f"/rest/v1/{table}", params=params, headers=self._headers())
        return resp.json()

    async def select_one(
        self, table: str, filters: dict[str, Any], columns: str = "*"
    ) -> dict | None:
        rows = await self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: dict) -> dict:
        resp = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers=self._headers(prefer="return=representation"),
        )
        rows = resp.json()
        return rows[0] if isinstance(rows, list) and rows else row

    async def upsert(self, table: str, row: dict, on_conflict: str) -> None:
        await self._request(
            "POST",
            f"/rest/v1/{table}",
            params={"on_conflict": on_conflict},
            json=row,
            headers=self._headers(prefer="resolution=merge-duplicates,return=minimal"),
        )

    async def update(self, table: str, filters: dict[str, Any], changes: dict) -> None:
        await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._filters(filters),
            json=changes,
            headers=self._headers(prefer="return=minimal"),
        )

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        if not filters:
            raise ClientContextError("Refusing to delete without filters")
        await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=self._filters(filters),
            headers=self._headers(prefer="return=minimal"),
        )

    # -- GoTrue ------------------------------------------------------------

    async def get_user(self) -> AuthUser | None:
        """Resolve the session token to a user. None if absent or rejected."""
        self._require_user_context("get_user")
        if not self._access_token:
            return None
        try:
            resp = await self._request("GET", "/auth/v1/user", headers=self._headers())
        except BackendError as exc:
            if exc.status in (401, 403):
                logger.debug("Session token rejected by auth server")
                return None
            raise
        data = resp.json()
        return AuthUser(id=data["id"], email=data.get("email"))

    async def refresh_session(self, refresh_token: str) -> dict:
        """Exchange a refresh token for a new session; adopts the new token."""
        self._require_user_context("refresh_session")
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            headers={"apikey": self._api_key},
        )
        session = resp.json()
        self._access_token = session.get("access_token")
        return session

    async def admin_get_user(self, user_id: str) -> AuthUser | None:
        """Look up any account by id through the admin API. None if unknown."""
        if self.context is not ClientContext.SERVICE:
            raise ClientContextError("admin_get_user requires the service-role client")
        try:
            resp = await self._request("GET", f"/auth/v1/admin/users/{user_id}", headers=self._headers())
        except BackendError as exc:
            if exc.status == 404:
                return None
            raise
        data = resp.json()
        data = data.get("user", data)
        return AuthUser(id=data["id"], email=data.get("email"))


@lru_cache
def get_service_client() -> SupabaseClient:
    """Process-wide service-role client, built on first use."""
    client = SupabaseClient.service()
    logger.info("Supabase service client initialized")
    return client


def reset_service_client() -> None:
    """Drop the cached service client (tests, shutdown)."""
    get_service_client.cache_clear()
