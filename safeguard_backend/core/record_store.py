from __future__ import annotations

import copy
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from uuid import uuid4

from core.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

Record = dict[str, Any]
ChangeHandler = Callable[[dict[str, Any]], "Awaitable[None] | None"]

# Table names
ACCIDENTS = "accidents"
EMERGENCY_CONTACTS = "emergency_contacts"
PROFILES = "profiles"
ALERT_LOGS = "alert_logs"


@dataclass(eq=False)
class _Subscription:
    table: str
    handler: ChangeHandler
    filters: dict[str, Any] = field(default_factory=dict)


def _matches(record: Record, filters: dict[str, Any] | None) -> bool:
    return all(record.get(k) == v for k, v in (filters or {}).items())


class RecordStore:
    """
    In-process record store with a change feed.

    insert / update / delete / query over named tables, plus subscribe() so
    views can refresh when someone else writes. Records go in and come out as
    copies; callers never share a dict with the store.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Record]] = defaultdict(dict)
        self._subscriptions: list[_Subscription] = []

    async def insert(self, table: str, record: Record) -> Record:
        row = copy.deepcopy(record)
        row.setdefault("id", str(uuid4()))
        if row["id"] in self._tables[table]:
            raise StoreError(f"duplicate id {row['id']} in {table}")
        self._tables[table][row["id"]] = row
        await self._notify("INSERT", table, row)
        return copy.deepcopy(row)

    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        row = self._tables[table].get(record_id)
        if row is None:
            raise NotFoundError(f"{table}/{record_id} not found")
        row.update(copy.deepcopy({k: v for k, v in patch.items() if k != "id"}))
        await self._notify("UPDATE", table, row)
        return copy.deepcopy(row)

    async def delete(self, table: str, record_id: str) -> None:
        row = self._tables[table].pop(record_id, None)
        if row is None:
            raise NotFoundError(f"{table}/{record_id} not found")
        await self._notify("DELETE", table, row)

    async def get(self, table: str, record_id: str) -> Record | None:
        row = self._tables[table].get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def query(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Record]:
        rows = [r for r in self._tables[table].values() if _matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by), reverse=descending)
        return copy.deepcopy(rows)

    def subscribe(
        self, table: str, on_change: ChangeHandler, filters: dict[str, Any] | None = None
    ) -> Callable[[], None]:
        """Register a change handler. Returns a callable that unsubscribes it."""
        sub = _Subscription(table=table, handler=on_change, filters=dict(filters or {}))
        self._subscriptions.append(sub)

        def _unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return _unsubscribe

    async def _notify(self, event: str, table: str, row: Record) -> None:
        for sub in list(self._subscriptions):
            if sub.table != table or not _matches(row, sub.filters):
                continue
            payload = {"event": event, "table": table, "record": copy.deepcopy(row)}
            try:
                result = sub.handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # a broken listener must not fail the write that triggered it
                logger.exception("Change handler for %s failed", table)
