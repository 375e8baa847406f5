"""
Remote data gateway – table reads and writes through the hosted client.

Screens describe a table operation fluently::

    await gateway.table("doctors").select("*, profiles:user_id(full_name)") \\
        .eq("hospital_id", hospital_id).order("created_at", desc=True).execute()

``TableQuery`` records the calls; ``DataGateway.execute`` replays them onto the
supabase-py request builder, awaits it, and maps client failures to
``GatewayError``. ``single()`` / ``maybe_single()`` are applied to the returned
rows here so both reads and ``insert(...).select().single()`` behave alike.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

import httpx
from supabase import AsyncClient, PostgrestAPIError

from hconnect.errors import GatewayError

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PATCH", "DELETE"}


@dataclass
class GatewayResult:
    data: Any
    count: Optional[int] = None


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TableQuery:
    """A single operation against one table, built up fluently.

    ``params`` keeps the PostgREST form of every filter (``("status", "eq.paid")``)
    for logging and inspection; ``calls`` keeps the builder calls to replay.
    """

    def __init__(self, gateway: "DataGateway", table: str):
        self._gateway = gateway
        self.table = table
        self.method = "GET"
        self.params: List[Tuple[str, str]] = []
        self.calls: List[Tuple[str, tuple, dict]] = []
        self.body: Any = None
        self.cardinality: Optional[str] = None   # "single" or "maybe_single"
        self.returning = False

    def _call(self, name: str, *args, **kwargs) -> "TableQuery":
        self.calls.append((name, args, kwargs))
        return self

    # ── Reads ────────────────────────────────────────────────────────

    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False) -> "TableQuery":
        columns = re.sub(r"\s+", "", columns)
        self.params.append(("select", columns))
        if self.method in WRITE_METHODS:
            # Writes already return the affected rows.
            self.returning = True
            return self
        if head:
            self.method = "HEAD"
        return self._call("select", columns, count=count, head=head or None)

    # ── Writes ───────────────────────────────────────────────────────

    def insert(self, rows: Any) -> "TableQuery":
        self.method = "POST"
        self.body = rows
        return self._call("insert", rows)

    def update(self, values: dict) -> "TableQuery":
        self.method = "PATCH"
        self.body = values
        return self._call("update", values)

    def upsert(self, rows: Any, on_conflict: Optional[str] = None) -> "TableQuery":
        self.method = "POST"
        self.body = rows
        if on_conflict:
            self.params.append(("on_conflict", on_conflict))
        return self._call("upsert", rows, on_conflict=on_conflict or "")

    def delete(self) -> "TableQuery":
        self.method = "DELETE"
        return self._call("delete")

    # ── Filters / modifiers ──────────────────────────────────────────

    def _filter(self, column: str, op: str, value: Any) -> "TableQuery":
        formatted = _format_value(value)
        self.params.append((column, f"{op}.{formatted}"))
        return self._call(op if op != "is" else "is_", column, formatted)

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "eq", value)

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "neq", value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "gte", value)

    def lte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "lte", value)

    def is_(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "is", value)

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        values = [_format_value(v) for v in values]
        self.params.append((column, f"in.({','.join(values)})"))
        return self._call("in_", column, values)

    def or_(self, expression: str) -> "TableQuery":
        self.params.append(("or", f"({expression})"))
        return self._call("or_", expression)

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self.params.append(("order", f"{column}.{'desc' if desc else 'asc'}"))
        return self._call("order", column, desc=desc)

    def limit(self, n: int) -> "TableQuery":
        self.params.append(("limit", str(n)))
        return self._call("limit", n)

    def single(self) -> "TableQuery":
        self.cardinality = "single"
        return self

    def maybe_single(self) -> "TableQuery":
        self.cardinality = "maybe_single"
        return self

    def param(self, name: str) -> Optional[str]:
        """Return the first value recorded for a query parameter."""
        return next((v for k, v in self.params if k == name), None)

    async def execute(self) -> GatewayResult:
        return await self._gateway.execute(self)


class DataGateway:
    """Table access through a supabase-py ``AsyncClient``."""

    def __init__(self, client: Optional[AsyncClient]):
        self.client = client

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def build(self, query: TableQuery):
        """Replay the recorded calls onto the client's request builder."""
        builder = self.client.table(query.table)
        for name, args, kwargs in query.calls:
            builder = getattr(builder, name)(*args, **kwargs)
        return builder

    async def execute(self, query: TableQuery) -> GatewayResult:
        try:
            response = await self.build(query).execute()
        except PostgrestAPIError as e:
            raise GatewayError(e.message or str(e), code=e.code, details=e.details or e.hint) from e
        except httpx.HTTPError as e:
            logger.warning("gateway request to %s failed: %s", query.table, e)
            raise GatewayError(f"Network error: {e}") from e
        except ValueError as e:
            # Undecodable body (maintenance pages, proxies).
            logger.warning("unreadable response from %s: %s", query.table, e)
            raise GatewayError(f"Unexpected response from the data service: {e}") from e

        data = None if query.method == "HEAD" else response.data
        if query.cardinality:
            data = _one_row(data, query.cardinality)
        return GatewayResult(data=data, count=response.count)


def _one_row(data: Any, cardinality: str) -> Any:
    rows = data if isinstance(data, list) else ([data] if data else [])
    if len(rows) == 1:
        return rows[0]
    if not rows and cardinality == "maybe_single":
        return None
    raise GatewayError(
        f"JSON object requested, multiple (or no) rows returned ({len(rows)} rows)",
        code="PGRST116",
    )
