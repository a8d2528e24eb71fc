"""In-memory record store used by unit tests."""

import copy
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from tierbill.core.exceptions import RecordStoreError
from tierbill.integrations.record_store import (
    AggregateColumn,
    BaseRecordStore,
    CrudFilter,
    ListOptions,
)


def _like(pattern: str, value: Any, case_insensitive: bool) -> bool:
    if value is None:
        return False
    regex = "^" + ".*".join(re.escape(part) for part in str(pattern).split("%")) + "$"
    return re.match(regex, str(value), re.IGNORECASE if case_insensitive else 0) is not None


def _compare(left: Any, right: Any) -> Optional[int]:
    if left is None:
        return None
    try:
        left_num, right_num = float(left), float(right)
        return (left_num > right_num) - (left_num < right_num)
    except (TypeError, ValueError):
        left_str, right_str = str(left), str(right)
        return (left_str > right_str) - (left_str < right_str)


def matches(row: Mapping[str, Any], crud_filter: CrudFilter) -> bool:
    """Evaluate one filter the way the gateway does."""
    value = row.get(crud_filter.field)
    operator = crud_filter.operator or "equal"
    if operator == "equal":
        return value is not None and str(value) == str(crud_filter.value)
    if operator == "not_equal":
        return value is None or str(value) != str(crud_filter.value)
    if operator in ("like", "ilike"):
        return _like(crud_filter.value, value, operator == "ilike")

    cmp = _compare(value, crud_filter.value)
    if cmp is None:
        return False
    return {"gt": cmp > 0, "gte": cmp >= 0, "lt": cmp < 0, "lte": cmp <= 0}[operator]


class InMemoryRecordStore(BaseRecordStore):
    """Dict-backed record store with write logging and failure injection."""

    def __init__(self):
        """Start with empty tables."""
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.writes: List[Tuple[str, str, Dict[str, Any]]] = []
        self.sql: List[str] = []
        self.failures: Set[Tuple[str, str]] = set()
        self.failing_filters: Set[str] = set()

    def seed(self, table: str, *rows: Mapping[str, Any]) -> None:
        """Insert rows without logging them as writes."""
        for row in rows:
            self.tables.setdefault(table, []).append(copy.deepcopy(dict(row)))

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """All rows of a table, including soft-deleted ones."""
        return self.tables.get(table, [])

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        """Get a row by id."""
        return next((r for r in self.rows(table) if str(r.get("id")) == str(row_id)), None)

    def fail(self, action: str, table: str) -> None:
        """Make every ``action`` on ``table`` raise RecordStoreError."""
        self.failures.add((action, table))

    def writes_to(self, table: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        """Logged writes against one table."""
        return [w for w in self.writes if w[1] == table]

    def _check(self, action: str, table: str) -> None:
        if (action, table) in self.failures:
            raise RecordStoreError("Injected failure", status_code=500, action=action, table=table)

    def _select(
        self,
        table: str,
        filters: Sequence[CrudFilter],
        options: Optional[ListOptions],
    ) -> List[Dict[str, Any]]:
        for crud_filter in filters:
            if crud_filter.field in self.failing_filters:
                raise RecordStoreError("Injected filter failure", status_code=500, table=table)

        options = options or ListOptions()
        rows = [r for r in self.rows(table) if all(matches(r, f) for f in filters)]
        if options.auto_exclude_deleted:
            rows = [r for r in rows if r.get("deleted_at") is None]
        if options.sort_column:
            column, _, direction = options.sort_column.partition(" ")
            rows.sort(key=lambda r: str(r.get(column) or ""), reverse=direction.upper() == "DESC")
        if options.offset:
            rows = rows[options.offset :]
        if options.limit is not None:
            rows = rows[: options.limit]
        return [copy.deepcopy(r) for r in rows]

    async def list(
        self,
        table: str,
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> List[Dict[str, Any]]:
        self._check("list", table)
        return self._select(table, filters, options)

    async def create(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self._check("create", table)
        row = copy.deepcopy(dict(payload))
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        row.setdefault("deleted_at", None)
        self.tables.setdefault(table, []).append(row)
        self.writes.append(("create", table, copy.deepcopy(row)))
        return copy.deepcopy(row)

    async def update(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self._check("update", table)
        row = self.get(table, payload["id"])
        if row is None:
            raise RecordStoreError("Row not found", status_code=404, action="update", table=table)
        row.update(copy.deepcopy(dict(payload)))
        self.writes.append(("update", table, copy.deepcopy(dict(payload))))
        return copy.deepcopy(row)

    async def delete(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self._check("delete", table)
        row = self.get(table, payload["id"])
        if row is None:
            raise RecordStoreError("Row not found", status_code=404, action="delete", table=table)
        row["deleted_at"] = datetime.now(timezone.utc).isoformat()
        self.writes.append(("delete", table, {"id": payload["id"]}))
        return copy.deepcopy(row)

    async def aggregate(
        self,
        table: str,
        columns: Sequence[AggregateColumn],
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> List[Dict[str, Any]]:
        self._check("aggregate", table)
        rows = self._select(table, filters, options)
        result: Dict[str, Any] = {}
        for column in columns:
            if column.function.upper() != "COUNT":
                raise NotImplementedError(column.function)
            result[column.resolved_alias] = sum(1 for r in rows if r.get(column.field) is not None)
        return [result]

    async def count(
        self,
        table: str,
        filters: Sequence[CrudFilter] = (),
        options: Optional[ListOptions] = None,
    ) -> int:
        self._check("count", table)
        return len(self._select(table, filters, options))

    async def execute_sql(self, sql: str) -> List[Dict[str, Any]]:
        self._check("execute_sql", "sql")
        self.sql.append(sql)
        return []

    async def update_if(
        self,
        table: str,
        payload: Mapping[str, Any],
        expected: Mapping[str, Sequence[Any]],
    ) -> Optional[Dict[str, Any]]:
        self._check("update", table)
        row = self.get(table, payload["id"])
        if row is None:
            return None
        if any(row.get(column) not in allowed for column, allowed in expected.items()):
            return None
        row.update(copy.deepcopy(dict(payload)))
        self.writes.append(("update", table, copy.deepcopy(dict(payload))))
        return copy.deepcopy(row)
