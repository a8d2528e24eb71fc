"""Record store client.

The record store is the remote generic CRUD gateway every tenant-scoped table
lives behind. Requests are webhook style: a JSON body with ``action`` and
``table`` posted to ``/api_crud``, plus a raw SQL endpoint (``/api_dinamico``)
for statements the CRUD surface cannot express.
"""

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from tierbill.core.config import settings
from tierbill.core.exceptions import RecordStoreError, RecordStoreTimeoutError
from tierbill.core.logging import logger

MAX_FILTERS = 8

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


@dataclass(frozen=True)
class CrudFilter:
    """A single list filter.

    ``operator`` defaults to equality on the server. Supported operators:
    equal, not_equal, like, ilike, gt, gte, lt, lte.
    """

    field: str
    value: Any
    operator: Optional[str] = None


@dataclass(frozen=True)
class ListOptions:
    """Options for list, count and aggregate requests."""

    combine_type: Optional[str] = None
    sort_column: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    auto_exclude_deleted: bool = False
    fields: Optional[Sequence[str]] = None
    group_by: Optional[Sequence[str]] = None


@dataclass(frozen=True)
class AggregateColumn:
    """An aggregate expression, e.g. COUNT(id) AS total."""

    function: str
    field: str
    alias: Optional[str] = None

    @property
    def resolved_alias(self) -> str:
        """The alias sent to the server."""
        return self.alias or f"{self.function.lower()}_{self.field}"


def build_search_params(
    filters: Sequence[CrudFilter],
    options: Optional[ListOptions] = None,
) -> Dict[str, Any]:
    """Build the flat search_fieldN/search_valueN/search_operatorN params.

    The gateway accepts at most eight filters; extra filters are dropped.
    ``auto_exclude_deleted`` adds ``deleted_at IS NULL`` server side without
    consuming a filter slot.
    """
    params: Dict[str, Any] = {}
    if len(filters) > MAX_FILTERS:
        logger.warning(f"Record store accepts {MAX_FILTERS} filters, dropping {len(filters) - 8}")

    for n, crud_filter in enumerate(filters[:MAX_FILTERS], start=1):
        params[f"search_field{n}"] = crud_filter.field
        params[f"search_value{n}"] = str(crud_filter.value)
        if crud_filter.operator:
            params[f"search_operator{n}"] = crud_filter.operator

    if options is None:
        return params

    if options.combine_type:
        params["combine_type"] = options.combine_type
    if options.sort_column:
        params["sort_column"] = options.sort_column
    if options.limit is not None:
        params["limit"] = str(options.limit)
    if options.offset is not None:
        params["offset"] = str(options.offset)
    if options.auto_exclude_deleted:
        params["auto_exclude_deleted"] = True
    if options.fields:
        params["fields"] = list(options.fields)

    return params


def build_aggregate_payload(
    table: str,
    columns: Sequence[AggregateColumn],
    options: Optional[ListOptions] = None,
    filters: Sequence[CrudFilter] = (),
) -> Dict[str, Any]:
    """Build the body of an ``action: aggregate`` request."""
    options = options or ListOptions()
    payload: Dict[str, Any] = {
        "action": "aggregate",
        "table": table,
        "aggregates": [
            {"function": c.function, "field": c.field, "alias": c.resolved_alias} for c in columns
        ],
    }
    if options.group_by:
        payload["group_by"] = list(options.group_by)
    payload.update(
        build_search_params(
            filters,
            ListOptions(
                combine_type=options.combine_type,
                auto_exclude_deleted=options.auto_exclude_deleted,
            ),
        )
    )
    if options.sort_column:
        payload["sort_column"] = options.sort_column
    if options.limit is not None:
        payload["limit"] = str(options.limit)
    return payload


def normalize_list(data: Any) -> List[Dict[str, Any]]:
    """Normalize any gateway list response shape into a list of rows."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("data", "value", "items"):
            if key in data:
                rows = data[key]
                return rows if isinstance(rows, list) else []
    return []


def normalize_one(data: Any) -> Dict[str, Any]:
    """Extract the single row of a create/update response."""
    if isinstance(data, list):
        return data[0] if data else {}
    if isinstance(data, dict):
        for key in ("data", "value"):
            if key in data:
                inner = data[key]
                if isinstance(inner, list):
                    return inner[0] if inner else {}
                return inner if isinstance(inner, dict) else {}
        return data
    return {}


def quote_identifier(name: str) -> str:
    """Validate a table or column name before it is interpolated into SQL."""
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def sql_literal(value: Any) -> str:
    """Render a Python value as a SQL literal.

    Strings are single-quoted with embedded quotes doubled.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("Non-finite numbers cannot be written")
        return repr(value)
    if isinstance(value, (datetime, date)):
        value = value.isoformat()
    text = str(value)
    if "\x00" in text:
        raise ValueError("NUL bytes are not allowed in SQL literals")
    return "'" + text.replace("'", "''") + "'"


def build_guarded_update_sql(
    table: str,
    payload: Mapping[str, Any],
    expected: Mapping[str, Sequence[Any]],
) -> str:
    """Build ``UPDATE ... WHERE id = .. AND field IN (...) RETURNING *``.

    The row is only updated while every expected field still holds one of the
    listed values, which makes the statement a compare-and-set.
    """
    if "id" not in payload:
        raise ValueError("Guarded updates require an id")
    assignments = ", ".join(
        f"{quote_identifier(column)} = {sql_literal(value)}"
        for column, value in payload.items()
        if column != "id"
    )
    if not assignments:
        raise ValueError("Guarded updates require at least one column to change")

    conditions = [f"id = {sql_literal(payload['id'])}"]
    for column, allowed in expected.items():
        if not allowed:
            raise ValueError(f"No allowed values given for {column}")
        values = ", ".join(sql_literal(v) for v in allowed)
        conditions.append(f"{quote_identifier(column)} IN ({values})")

    return (
        f"UPDATE {quote_identifier(table)} SET {assignments} "
        f"WHERE {' AND '.join(conditions)} RETURNING *"
    )


class BaseRecordStore(ABC):
    """Async interface of the generic record store."""

    @abstractmethod
    async def list(
        self,
        table: str,
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> List[Dict[str, Any]]:
        """List rows matching all filters."""

    @abstractmethod
    async def create(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it."""

    @abstractmethod
    async def update(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Update the row identified by ``payload['id']`` and return it."""

    @abstractmethod
    async def delete(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Delete (usually soft-delete) the row identified by ``payload['id']``."""

    @abstractmethod
    async def aggregate(
        self,
        table: str,
        columns: Sequence[AggregateColumn],
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> List[Dict[str, Any]]:
        """Run aggregate functions, optionally grouped."""

    @abstractmethod
    async def count(
        self,
        table: str,
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> int:
        """Count rows matching all filters."""

    @abstractmethod
    async def execute_sql(self, sql: str) -> List[Dict[str, Any]]:
        """Execute a raw SQL statement and return its rows."""

    @abstractmethod
    async def update_if(
        self,
        table: str,
        payload: Mapping[str, Any],
        expected: Mapping[str, Sequence[Any]],
    ) -> Optional[Dict[str, Any]]:
        """Compare-and-set update.

        Returns the updated row, or None when the row no longer matches ``expected``.
        """

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> "BaseRecordStore":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args) -> None:
        """Exit async context manager."""
        await self.close()


class HttpRecordStore(BaseRecordStore):
    """Record store backed by the CRUD gateway over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_wait: Optional[wait_base] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Gateway base URL. Defaults to settings.
            api_key: Value of the X-Api-Key header. Defaults to settings.
            timeout: Per-call timeout in seconds. Defaults to settings (30s).
            max_retries: Attempts for idempotent reads. Defaults to settings.
            retry_wait: tenacity wait strategy between read attempts.
            client: Pre-built httpx client (tests inject a MockTransport here).
        """
        if base_url:
            base_url = base_url.rstrip("/")
            self.crud_endpoint = f"{base_url}/api_crud"
            self.sql_endpoint = f"{base_url}/api_dinamico"
        else:
            self.crud_endpoint = settings.crud_endpoint
            self.sql_endpoint = settings.sql_endpoint
        self.max_retries = max_retries or settings.RECORD_STORE_MAX_RETRIES
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.RECORD_STORE_TIMEOUT_SECONDS,
            headers={"X-Api-Key": api_key if api_key is not None else settings.RECORD_STORE_API_KEY},
        )

    async def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, url: str, body: Dict[str, Any]) -> Any:
        """POST a JSON body and decode the JSON response."""
        action = body.get("action")
        table = body.get("table")
        try:
            response = await self._client.post(url, json=body)
            response.raise_for_status()
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise RecordStoreTimeoutError(
                f"Record store unreachable: {e.__class__.__name__}",
                action=action,
                table=table,
            ) from e
        except httpx.HTTPStatusError as e:
            raise RecordStoreError(
                self._backend_message(e.response),
                status_code=e.response.status_code,
                action=action,
                table=table,
            ) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RecordStoreError(
                "Record store returned invalid JSON", action=action, table=table
            ) from e

    async def _post_idempotent(self, url: str, body: Dict[str, Any]) -> Any:
        """POST a read request, retrying transport failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self.retry_wait,
            retry=retry_if_exception_type(RecordStoreTimeoutError),
            reraise=True,
        ):
            with attempt:
                return await self._post(url, body)

    @staticmethod
    def _backend_message(response: httpx.Response) -> str:
        """Pull the backend error message out of an error response."""
        try:
            data = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(data, dict):
            for key in ("error", "message", "detail"):
                if data.get(key):
                    return str(data[key])
        return f"HTTP {response.status_code}"

    async def list(
        self,
        table: str,
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> List[Dict[str, Any]]:
        """List rows matching all filters."""
        body = {"action": "list", "table": table, **build_search_params(filters, options)}
        return normalize_list(await self._post_idempotent(self.crud_endpoint, body))

    async def create(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it."""
        body = {"action": "create", "table": table, "payload": dict(payload)}
        return normalize_one(await self._post(self.crud_endpoint, body))

    async def update(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Update a row and return it."""
        body = {"action": "update", "table": table, "payload": dict(payload)}
        return normalize_one(await self._post(self.crud_endpoint, body))

    async def delete(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Delete a row."""
        body = {"action": "delete", "table": table, "payload": dict(payload)}
        return normalize_one(await self._post(self.crud_endpoint, body))

    async def aggregate(
        self,
        table: str,
        columns: Sequence[AggregateColumn],
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> List[Dict[str, Any]]:
        """Run aggregate functions."""
        body = build_aggregate_payload(table, columns, options, filters)
        return normalize_list(await self._post_idempotent(self.crud_endpoint, body))

    async def count(
        self,
        table: str,
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> int:
        """Count rows matching all filters."""
        options = options or ListOptions()
        body = {
            "action": "count",
            "table": table,
            **build_search_params(
                filters,
                ListOptions(
                    combine_type=options.combine_type,
                    auto_exclude_deleted=options.auto_exclude_deleted,
                ),
            ),
        }
        rows = normalize_list(await self._post_idempotent(self.crud_endpoint, body))
        return int(rows[0].get("count") or 0) if rows else 0

    async def execute_sql(self, sql: str) -> List[Dict[str, Any]]:
        """Execute a raw SQL statement."""
        return normalize_list(await self._post(self.sql_endpoint, {"sql": sql}))

    async def update_if(
        self,
        table: str,
        payload: Mapping[str, Any],
        expected: Mapping[str, Sequence[Any]],
    ) -> Optional[Dict[str, Any]]:
        """Compare-and-set update executed as a single guarded SQL statement."""
        rows = await self.execute_sql(build_guarded_update_sql(table, payload, expected))
        return rows[0] if rows else None
