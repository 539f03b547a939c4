"""Cloudflare D1 session store adapter (HTTP query API)."""
import re
from typing import Any
import httpx
import orjson
import structlog
from pydantic import ValidationError
from .base import SessionStore, StoreError, DuplicateSessionError
from ..session_models import SessionRecord

log = structlog.get_logger()

D1_API_BASE = "https://api.cloudflare.com/client/v4"
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class D1SessionStore(SessionStore):
    """D1 implementation of the session store.

    Every operation is one parameterized statement sent to the D1 ``/query``
    endpoint. Expects a table shaped like::

        CREATE TABLE user (
            token TEXT PRIMARY KEY,
            created_time INTEGER NOT NULL,
            enter_time INTEGER,
            expired_time INTEGER
        );
    """

    def __init__(
        self,
        account_id: str,
        database_id: str,
        api_token: str,
        table: str = "user",
        base_url: str = D1_API_BASE,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._url = f"{base_url.rstrip('/')}/accounts/{account_id}/d1/database/{database_id}/query"
        self._api_token = api_token
        self._table = table
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self._api_token}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def _query(self, sql: str, params: list[Any]) -> dict[str, Any]:
        """
        Run one statement and return its first result set.

        Returns:
            Dict with "results" (rows) and "meta" (includes "changes")

        Raises:
            StoreError: On transport failure or an unsuccessful response
        """
        client = self._get_client()
        try:
            response = await client.post(
                self._url,
                content=orjson.dumps({"sql": sql, "params": params}),
            )
        except httpx.HTTPError as e:
            log.error("d1.request_failed", error=str(e))
            raise StoreError(f"D1 request failed: {e}") from e

        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise StoreError(f"D1 returned non-JSON response ({response.status_code})") from e

        if response.status_code >= 400 or not data.get("success", False):
            log.error("d1.query_failed", status=response.status_code, errors=data.get("errors"))
            raise StoreError(f"D1 query failed: {data.get('errors')}")

        try:
            return data["result"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise StoreError("D1 response has no result set") from e

    @staticmethod
    def _changes(result: dict[str, Any]) -> int:
        return int((result.get("meta") or {}).get("changes", 0))

    async def get(self, token: str) -> SessionRecord | None:
        result = await self._query(
            f"SELECT token, created_time, enter_time, expired_time FROM {self._table} "
            "WHERE token = ? LIMIT 1",
            [token],
        )
        rows = result.get("results") or []
        if not rows:
            return None
        try:
            return SessionRecord(**rows[0])
        except (TypeError, ValidationError) as e:
            raise StoreError(f"Malformed session record for {token[:8]}...") from e

    async def create(self, token: str, created_time: int) -> SessionRecord:
        result = await self._query(
            f"INSERT INTO {self._table} (token, created_time) VALUES (?, ?) "
            "ON CONFLICT(token) DO NOTHING",
            [token, created_time],
        )
        if self._changes(result) == 0:
            raise DuplicateSessionError(f"Session {token[:8]}... already exists")
        log.info("session.created", token=token[:8], adapter="d1")
        return SessionRecord(token=token, created_time=created_time)

    async def mark_entered(self, token: str, enter_time: int, expired_time: int) -> bool:
        result = await self._query(
            f"UPDATE {self._table} SET enter_time = ?, expired_time = ? "
            "WHERE token = ? AND enter_time IS NULL",
            [enter_time, expired_time, token],
        )
        return self._changes(result) == 1

    async def delete_unentered(self) -> int:
        result = await self._query(
            f"DELETE FROM {self._table} WHERE enter_time IS NULL AND expired_time IS NULL",
            [],
        )
        return self._changes(result)

    async def health_check(self) -> bool:
        try:
            await self._query("SELECT 1", [])
            return True
        except StoreError as e:
            log.warning("d1.health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
