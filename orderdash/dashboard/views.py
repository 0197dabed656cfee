"""Dashboard views derived from the stored orders.

- Live feed: newest orders first with a relative age label
- Orders table: sort, status filter, global search, CSV export
- Sales series: hourly (24 buckets) or daily (7 buckets) revenue ending now

Everything here is a pure function of (orders, now); nothing is cached.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Any, Iterable, Literal

from orderdash.models import Order

FEED_DEFAULT_LIMIT = 20
FEED_MAX_LIMIT = 100

TABLE_COLUMNS = ("external_id", "email", "total_price", "product", "status", "date")
TABLE_HEADERS = ("Order ID", "Email", "Total", "Product", "Status", "Date")

CENTS = Decimal("0.01")

# Sums and quantize are exact here: no 28-digit ceiling, no overflow.
_MONEY_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN, rounding=ROUND_HALF_UP)

SalesView = Literal["hourly", "daily"]

_SALES_BUCKETS: dict[str, tuple[int, timedelta]] = {
    "hourly": (24, timedelta(hours=1)),
    "daily": (7, timedelta(days=1)),
}


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def to_cents(value: Decimal) -> Decimal:
    with localcontext(_MONEY_CONTEXT):
        return value.quantize(CENTS)


def total(values: Iterable[Decimal]) -> Decimal:
    with localcontext(_MONEY_CONTEXT):
        return sum(values, Decimal("0"))


def money(value: Decimal) -> str:
    return str(to_cents(value))


# ── Live feed ──────────────────────────────────────────────────────────────


def age_label(placed: datetime | None, now: datetime) -> str:
    if placed is None:
        return ""
    minutes = int((now - placed).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    return placed.date().isoformat()


def live_feed(
    orders: Iterable[Order],
    limit: int = FEED_DEFAULT_LIMIT,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Most recently stored orders first, each with an `age` label."""
    current = _now(now)
    newest = sorted(orders, key=lambda o: o.creation_time, reverse=True)[:limit]
    return [{**o.to_dict(), "age": age_label(o.placed_at(), current)} for o in newest]


# ── Orders table ───────────────────────────────────────────────────────────


def _sort_key(column: str):
    if column == "total_price":
        return lambda o: o.price()
    if column == "date":
        # Orders without a timestamp sort as the oldest
        floor = datetime.min.replace(tzinfo=timezone.utc)
        return lambda o: o.placed_at() or floor
    return lambda o: getattr(o, column).lower()


def table_rows(
    orders: Iterable[Order],
    sort: str = "date",
    descending: bool = True,
    status: str | None = None,
    query: str | None = None,
) -> list[Order]:
    """Filter and sort orders the way the orders table shows them.

    Args:
        sort: One of TABLE_COLUMNS.
        descending: Sort direction.
        status: Case-insensitive substring match on the status column.
        query: Case-insensitive substring match on any column.

    Raises:
        ValueError: sort is not a table column.
    """
    if sort not in TABLE_COLUMNS:
        raise ValueError(f"Cannot sort by {sort!r}")

    rows = list(orders)
    if status:
        needle = status.lower()
        rows = [o for o in rows if needle in o.status.lower()]
    if query:
        needle = query.lower()
        rows = [
            o for o in rows
            if any(needle in getattr(o, col).lower() for col in TABLE_COLUMNS)
        ]
    return sorted(rows, key=_sort_key(sort), reverse=descending)


def export_csv(rows: Iterable[Order]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(TABLE_HEADERS)
    for o in rows:
        writer.writerow([getattr(o, col) for col in TABLE_COLUMNS])
    return buf.getvalue()


def export_filename(now: datetime | None = None) -> str:
    return f"orders-{_now(now).date().isoformat()}.csv"


# ── Sales series ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SalesPoint:
    start: datetime
    label: str
    revenue: Decimal
    order_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.start.isoformat(),
            "label": self.label,
            "revenue": money(self.revenue),
            "order_count": self.order_count,
        }


def _bucket_label(start: datetime, view: str) -> str:
    if view == "hourly":
        return start.strftime("%I:%M %p")
    return f"{start:%b} {start.day}"


def sales_series(
    orders: Iterable[Order],
    view: SalesView = "hourly",
    now: datetime | None = None,
) -> list[SalesPoint]:
    """Revenue per bucket, oldest bucket first, the last one starting at now."""
    if view not in _SALES_BUCKETS:
        raise ValueError(f"Unknown sales view {view!r}")
    count, step = _SALES_BUCKETS[view]
    current = _now(now)

    placed = [(o, o.placed_at()) for o in orders]
    points = []
    for i in range(count - 1, -1, -1):
        start = current - i * step
        end = start + step
        in_bucket = [o for o, at in placed if at is not None and start <= at < end]
        revenue = total(o.price() for o in in_bucket)
        points.append(
            SalesPoint(
                start=start,
                label=_bucket_label(start, view),
                revenue=to_cents(revenue),
                order_count=len(in_bucket),
            )
        )
    return points


def sales_summary(points: list[SalesPoint]) -> dict[str, Any]:
    total_revenue = total(p.revenue for p in points)
    total_orders = sum(p.order_count for p in points)
    average = Decimal("0")
    if total_orders:
        with localcontext() as ctx:
            ctx.prec = max(ctx.prec, total_revenue.adjusted() + 8)
            ctx.Emax = MAX_EMAX
            average = total_revenue / total_orders
    return {
        "total_revenue": money(total_revenue),
        "total_orders": total_orders,
        "average_order_value": money(average),
    }
