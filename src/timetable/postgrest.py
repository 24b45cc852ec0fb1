"""httpx adapters for the hosted PostgREST endpoint.

PostgrestClient owns one AsyncClient and hands out table/directory views:

    async with PostgrestClient.from_config(get_config()) as client:
        table = client.schedules()
        rows = await table.select({"year": 2026, "week_number": 42})

Error bodies ({code, message, details, hint}) become RemoteError so the store
can branch on Postgres codes (23505, 23514). Network failures and 5xx become
TransientRemoteError; reads are retried on those with tenacity, writes never
are.
"""

from typing import Any, Mapping, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.timetable.config import TimetableConfig
from src.timetable.errors import RemoteError, TransientRemoteError
from src.timetable.logging import get_logger
from src.timetable.remote import COURSE_JOIN_COLUMNS, PROFILE_COLUMNS

logger = get_logger(__name__)

# PostgREST code when .single() semantics match zero rows
NO_ROWS = "PGRST116"
_RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def eq_params(filters: Mapping[str, Any]) -> dict[str, str]:
    """{"year": 2026} -> {"year": "eq.2026"}; None filters use is.null."""
    params = {}
    for column, value in filters.items():
        op = "is" if value is None else "eq"
        params[column] = f"{op}.{_literal(value)}"
    return params


def in_param(values: Sequence[Any]) -> str:
    quoted = ",".join('"' + str(v).replace('"', '\\"') + '"' for v in values)
    return f"in.({quoted})"


def _raise_for_response(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or response.text or response.reason_phrase
    error_cls = (
        TransientRemoteError
        if response.status_code in _RETRYABLE_STATUS
        else RemoteError
    )
    raise error_cls(
        message,
        code=body.get("code"),
        details=body.get("details"),
        hint=body.get("hint"),
        status=response.status_code,
    )


class PostgrestClient:
    """Shared HTTP session for the table and directory adapters."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 15.0,
        read_attempts: int = 3,
        retry_wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.read_attempts = read_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.2, max=2)
        self._http = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: TimetableConfig, **kwargs: Any) -> "PostgrestClient":
        return cls(
            config.supabase_url,
            config.supabase_key,
            timeout=config.request_timeout_seconds,
            read_attempts=config.read_retry_attempts,
            **kwargs,
        )

    def schedules(
        self, table: str = "weekly_schedules", courses_table: str = "teaching_courses"
    ) -> "PostgrestTable":
        return PostgrestTable(self, table, courses_table)

    def directory(self, table: str = "user_profiles") -> "PostgrestDirectory":
        return PostgrestDirectory(self, table)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """One REST call. Returns the decoded body (None for 204)."""
        try:
            response = await self._http.request(
                method, f"/{path}", params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.warning("rest_timeout", method=method, path=path, error=str(e))
            raise TransientRemoteError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            logger.warning("rest_transport_error", method=method, path=path, error=str(e))
            raise TransientRemoteError(f"{method} {path} failed: {e}") from e

        _raise_for_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def read(self, path: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        """Idempotent GET, retried on transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.read_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TransientRemoteError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "rest_read_retry",
                        path=path,
                        attempt=attempt.retry_state.attempt_number,
                    )
                body = await self.request("GET", path, params=params)
        return body or []

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "PostgrestClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class PostgrestTable:
    """weekly_schedules over REST, every response including the course join."""

    def __init__(self, client: PostgrestClient, table: str, courses_table: str) -> None:
        self.client = client
        self.table = table
        self.select_columns = f"*,{courses_table}({','.join(COURSE_JOIN_COLUMNS)})"

    async def select(
        self,
        filters: Mapping[str, Any],
        *,
        order: Sequence[str] = (),
        columns: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {"select": columns or self.select_columns, **eq_params(filters)}
        if order:
            params["order"] = ",".join(order)
        return await self.client.read(self.table, params)

    async def insert(self, row: Mapping[str, Any]) -> dict[str, Any]:
        body = await self.client.request(
            "POST",
            self.table,
            params={"select": self.select_columns},
            json=dict(row),
            headers={"Prefer": "return=representation"},
        )
        return self._single(body, "insert")

    async def update(self, record_id: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        body = await self.client.request(
            "PATCH",
            self.table,
            params={"select": self.select_columns, **eq_params({"id": record_id})},
            json=dict(patch),
            headers={"Prefer": "return=representation"},
        )
        return self._single(body, "update", record_id)

    async def delete(self, record_id: Any) -> list[dict[str, Any]]:
        body = await self.client.request(
            "DELETE",
            self.table,
            params={"select": "id", **eq_params({"id": record_id})},
            headers={"Prefer": "return=representation"},
        )
        return body or []

    def _single(self, body: Any, operation: str, record_id: Any = None) -> dict[str, Any]:
        rows = body if isinstance(body, list) else [body] if body else []
        if len(rows) != 1:
            raise RemoteError(
                f"{operation} on {self.table} returned {len(rows)} rows",
                code=NO_ROWS,
                details=f"id={record_id}" if record_id is not None else None,
            )
        return rows[0]


class PostgrestDirectory:
    """user_profiles lookups for instructor display names."""

    def __init__(self, client: PostgrestClient, table: str) -> None:
        self.client = client
        self.table = table

    async def instructor_profiles(self, user_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        ids = [uid for uid in dict.fromkeys(user_ids) if uid]
        if not ids:
            return {}
        rows = await self.client.read(
            self.table,
            {"select": ",".join(PROFILE_COLUMNS), "user_id": in_param(ids)},
        )
        return {row["user_id"]: row for row in rows}
