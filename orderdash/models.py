"""Order records shared by the webhook path, the stores and the dashboard."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any


@dataclass(frozen=True)
class OrderFields:
    """Mutable fields of an order, as written by save/edit."""

    external_id: str
    email: str
    total_price: str
    product: str = ""
    date: str = ""
    status: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class Order:
    """A stored order."""

    store_key: str
    external_id: str
    email: str
    total_price: str
    product: str = ""
    date: str = ""
    status: str = ""
    creation_time: float = 0.0

    @classmethod
    def from_fields(
        cls, store_key: str, fields: OrderFields, creation_time: float
    ) -> Order:
        return cls(store_key=store_key, creation_time=creation_time, **fields.to_dict())

    def fields(self) -> OrderFields:
        return OrderFields(
            external_id=self.external_id,
            email=self.email,
            total_price=self.total_price,
            product=self.product,
            date=self.date,
            status=self.status,
        )

    def with_fields(self, fields: OrderFields) -> Order:
        return replace(self, **fields.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    # ── Derived values used by the dashboard ─────────────────────────────

    def price(self) -> Decimal:
        """total_price as a Decimal; unparseable text counts as zero."""
        try:
            value = Decimal(self.total_price.strip())
        except (InvalidOperation, AttributeError):
            return Decimal("0")
        if not value.is_finite():
            return Decimal("0")
        return value

    def placed_at(self) -> datetime | None:
        """When the order was placed: `date` if parseable, else creation_time."""
        if self.date:
            try:
                parsed = datetime.fromisoformat(self.date)
            except ValueError:
                parsed = None
            if parsed is not None:
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                return parsed
        if self.creation_time:
            return datetime.fromtimestamp(self.creation_time, tz=timezone.utc)
        return None
