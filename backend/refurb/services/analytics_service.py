# Overview: Service-layer analytics over phones, repairs, stock pieces and materiel expenses.

"""
Analytics aggregation (pure).

Works on records already loaded from the store; nothing in here queries the
database. Input rows may be ORM objects or plain mappings. They are
normalized once into *Record snapshots, and bad values degrade to zero or
are skipped. This module raises no domain errors on data, only on an unknown
time range.

Reference dates (what the time window is tested against):
- Phone:    sale date if sold (and dated), else purchase date
- Repair:   completed_at if set, else created_at
- Stock:    created_at
- Expense:  purchase_date

Money is Decimal throughout; to_dict() renders 2-decimal floats.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable

from refurb.models.inventory import MATERIEL_CATEGORIES, Sold, SaleState, normalize_sale_state
from refurb.money import ZERO, coerce_amount, format_eur, to_float
from refurb.time_utils import parse_iso_datetime, to_utc_z, utcnow


TIME_RANGES: dict[str, timedelta | None] = {
    "7days": timedelta(days=7),
    "30days": timedelta(days=30),
    "90days": timedelta(days=90),
    "1year": timedelta(days=365),
    "all": None,
}
DEFAULT_TIME_RANGE = "30days"

EPOCH = datetime(1970, 1, 1)

LOW_STOCK_THRESHOLD = 5

BREAKDOWN_SLICES = (
    ("sales_margin", "Ventes téléphones", "#8b5cf6"),
    ("repair_costs", "Coûts réparation", "#ef4444"),
    ("materiel_costs", "Matériel", "#f59e0b"),
)


class AnalyticsError(Exception):
    """Raised when the caller asks for something the aggregator cannot compute."""


# ----------------------------------------------------------------------------
# Normalization
# ----------------------------------------------------------------------------

def _get(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, Mapping):
        return row.get(name, default)
    return getattr(row, name, default)


def _first_present(row: Any, *names: str) -> Any:
    for name in names:
        value = _get(row, name)
        if value is not None:
            return value
    return None


def _to_datetime(value: Any) -> datetime | None:
    """Date-ish value -> UTC-naive datetime, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            return None
    return None


def _to_quantity(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        quantity = int(coerce_amount(value))
    except (ValueError, OverflowError):
        return 0
    return max(quantity, 0)


@dataclass(frozen=True)
class PhoneRecord:
    id: Any
    purchase_price: Decimal
    purchase_date: datetime | None
    sale: SaleState

    @property
    def is_sold(self) -> bool:
        return self.sale.is_sold

    @property
    def sale_price(self) -> Decimal:
        return self.sale.price if isinstance(self.sale, Sold) else ZERO

    @property
    def sale_datetime(self) -> datetime | None:
        if isinstance(self.sale, Sold):
            return _to_datetime(self.sale.date)
        return None

    @property
    def reference_date(self) -> datetime | None:
        return self.sale_datetime or self.purchase_date

    @property
    def margin(self) -> Decimal:
        return self.sale_price - self.purchase_price

    @classmethod
    def from_row(cls, row: Any) -> "PhoneRecord":
        # selling_price / sold_at / status are older column shapes
        sale = normalize_sale_state(
            is_sold=_get(row, "is_sold"),
            sale_price=_first_present(row, "sale_price", "selling_price"),
            sale_date=_first_present(row, "sale_date", "sold_at"),
            status=_get(row, "status"),
        )
        return cls(
            id=_get(row, "id"),
            purchase_price=coerce_amount(_get(row, "purchase_price")),
            purchase_date=_to_datetime(_get(row, "purchase_date")),
            sale=sale,
        )


@dataclass(frozen=True)
class RepairRecord:
    id: Any
    phone_id: Any
    cost: Decimal
    status: str
    created_at: datetime | None
    completed_at: datetime | None

    @property
    def reference_date(self) -> datetime | None:
        return self.completed_at or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "RepairRecord":
        return cls(
            id=_get(row, "id"),
            phone_id=_get(row, "phone_id"),
            cost=coerce_amount(_first_present(row, "total_cost", "cost")),
            status=str(_get(row, "status") or ""),
            created_at=_to_datetime(_get(row, "created_at")),
            completed_at=_to_datetime(_get(row, "completed_at")),
        )


@dataclass(frozen=True)
class StockRecord:
    id: Any
    purchase_price: Decimal
    quantity: int
    created_at: datetime | None

    @property
    def reference_date(self) -> datetime | None:
        return self.created_at

    @property
    def value(self) -> Decimal:
        return self.purchase_price * self.quantity

    @classmethod
    def from_row(cls, row: Any) -> "StockRecord":
        return cls(
            id=_get(row, "id"),
            purchase_price=coerce_amount(_get(row, "purchase_price")),
            quantity=_to_quantity(_get(row, "quantity")),
            created_at=_to_datetime(_get(row, "created_at")),
        )


@dataclass(frozen=True)
class ExpenseRecord:
    id: Any
    amount: Decimal
    category: str
    purchase_date: datetime | None

    @property
    def reference_date(self) -> datetime | None:
        return self.purchase_date

    @classmethod
    def from_row(cls, row: Any) -> "ExpenseRecord":
        return cls(
            id=_get(row, "id"),
            amount=coerce_amount(_get(row, "amount")),
            category=str(_get(row, "category") or "Autres"),
            purchase_date=_to_datetime(_get(row, "purchase_date")),
        )


@dataclass(frozen=True)
class AnalyticsDataset:
    phones: tuple[PhoneRecord, ...] = ()
    repairs: tuple[RepairRecord, ...] = ()
    stock_pieces: tuple[StockRecord, ...] = ()
    expenses: tuple[ExpenseRecord, ...] = ()

    @classmethod
    def from_rows(
        cls,
        *,
        phones: Iterable[Any] = (),
        repairs: Iterable[Any] = (),
        stock_pieces: Iterable[Any] = (),
        expenses: Iterable[Any] = (),
    ) -> "AnalyticsDataset":
        return cls(
            phones=tuple(PhoneRecord.from_row(r) for r in phones),
            repairs=tuple(RepairRecord.from_row(r) for r in repairs),
            stock_pieces=tuple(StockRecord.from_row(r) for r in stock_pieces),
            expenses=tuple(ExpenseRecord.from_row(r) for r in expenses),
        )

    @property
    def record_count(self) -> int:
        return len(self.phones) + len(self.repairs) + len(self.stock_pieces) + len(self.expenses)


# ----------------------------------------------------------------------------
# Time window
# ----------------------------------------------------------------------------

def resolve_start_date(time_range: str, now: datetime | None = None) -> datetime:
    if time_range not in TIME_RANGES:
        raise AnalyticsError(
            f"time range must be one of: {', '.join(TIME_RANGES)}"
        )
    window = TIME_RANGES[time_range]
    if window is None:
        return EPOCH
    return (now or utcnow()) - window


def filter_by_time_range(
    dataset: AnalyticsDataset,
    time_range: str,
    now: datetime | None = None,
) -> AnalyticsDataset:
    """
    Keep records whose reference date is >= now - window.

    "all" keeps everything, undated records included. Any other window drops
    records without a usable reference date.
    """
    start = resolve_start_date(time_range, now)
    if TIME_RANGES[time_range] is None:
        return dataset

    def keep(records):
        return tuple(r for r in records if r.reference_date is not None and r.reference_date >= start)

    return AnalyticsDataset(
        phones=keep(dataset.phones),
        repairs=keep(dataset.repairs),
        stock_pieces=keep(dataset.stock_pieces),
        expenses=keep(dataset.expenses),
    )


# ----------------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------------

@dataclass
class SummaryStats:
    total_purchased: int = 0
    total_sold: int = 0
    ca: Decimal = ZERO
    total_purchase_cost: Decimal = ZERO
    total_repair_cost: Decimal = ZERO
    total_materiel_cost: Decimal = ZERO
    revenue: Decimal = ZERO
    total_stock_value: Decimal = ZERO
    sales_margin: Decimal = ZERO
    total_phone_net_profit: Decimal = ZERO
    average_phone_net_profit: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "total_purchased": self.total_purchased,
            "total_sold": self.total_sold,
            "ca": to_float(self.ca),
            "total_purchase_cost": to_float(self.total_purchase_cost),
            "total_repair_cost": to_float(self.total_repair_cost),
            "total_materiel_cost": to_float(self.total_materiel_cost),
            "revenue": to_float(self.revenue),
            "total_stock_value": to_float(self.total_stock_value),
            "sales_margin": to_float(self.sales_margin),
            "total_phone_net_profit": to_float(self.total_phone_net_profit),
            "average_phone_net_profit": to_float(self.average_phone_net_profit),
            "display": {
                "ca": format_eur(self.ca),
                "revenue": format_eur(self.revenue),
                "total_stock_value": format_eur(self.total_stock_value),
            },
        }


def phone_net_profit(phone: PhoneRecord, repairs: Iterable[RepairRecord]) -> Decimal:
    """sale_price - purchase_price - cost of this phone's completed repairs."""
    repair_cost = sum(
        (r.cost for r in repairs if r.phone_id == phone.id and r.status == "completed"),
        ZERO,
    )
    return phone.sale_price - phone.purchase_price - repair_cost


def compute_stats(
    filtered: AnalyticsDataset,
    all_repairs: Iterable[RepairRecord] | None = None,
) -> SummaryStats:
    """
    Summary over a filtered dataset.

    all_repairs feeds the per-phone net profit. A sold phone's completed
    repairs count even if they fall outside the window. Defaults to the
    filtered repairs.
    """
    repairs_for_profit = tuple(all_repairs) if all_repairs is not None else filtered.repairs
    sold = [p for p in filtered.phones if p.is_sold]

    stats = SummaryStats()
    stats.total_purchased = len(filtered.phones)
    stats.total_sold = len(sold)
    stats.ca = sum((p.sale_price for p in sold), ZERO)
    stats.total_purchase_cost = sum((p.purchase_price for p in filtered.phones), ZERO)
    stats.total_repair_cost = sum((r.cost for r in filtered.repairs), ZERO)
    stats.total_materiel_cost = sum((e.amount for e in filtered.expenses), ZERO)
    stats.revenue = (
        stats.ca - stats.total_purchase_cost - stats.total_repair_cost - stats.total_materiel_cost
    )
    stats.total_stock_value = sum((s.value for s in filtered.stock_pieces), ZERO)
    stats.sales_margin = sum((p.margin for p in sold), ZERO)

    stats.total_phone_net_profit = sum(
        (phone_net_profit(p, repairs_for_profit) for p in sold), ZERO
    )
    if sold:
        stats.average_phone_net_profit = stats.total_phone_net_profit / len(sold)
    return stats


# ----------------------------------------------------------------------------
# Chart series
# ----------------------------------------------------------------------------

def build_time_series(filtered: AnalyticsDataset) -> list[dict]:
    """
    One bucket per ISO day with ca / revenue / expenses, ascending by date.

    - sold phone:  ca += sale price, revenue += margin (on its reference day)
    - repair:      expenses += cost, revenue -= cost
    - expense:     expenses += amount, revenue -= amount
    Unsold phones and stock pieces do not appear. Undated records are skipped.
    """
    buckets: dict[str, dict[str, Decimal]] = {}

    def bucket(when: datetime | None) -> dict[str, Decimal] | None:
        if when is None:
            return None
        key = when.date().isoformat()
        if key not in buckets:
            buckets[key] = {"ca": ZERO, "revenue": ZERO, "expenses": ZERO}
        return buckets[key]

    for phone in filtered.phones:
        if not phone.is_sold:
            continue
        entry = bucket(phone.reference_date)
        if entry is None:
            continue
        entry["ca"] += phone.sale_price
        entry["revenue"] += phone.margin

    for repair in filtered.repairs:
        entry = bucket(repair.reference_date)
        if entry is None:
            continue
        entry["expenses"] += repair.cost
        entry["revenue"] -= repair.cost

    for expense in filtered.expenses:
        entry = bucket(expense.reference_date)
        if entry is None:
            continue
        entry["expenses"] += expense.amount
        entry["revenue"] -= expense.amount

    return [
        {
            "date": key,
            "ca": to_float(values["ca"]),
            "revenue": to_float(values["revenue"]),
            "expenses": to_float(values["expenses"]),
        }
        for key, values in sorted(buckets.items())
    ]


def build_breakdown(stats: SummaryStats) -> list[dict]:
    """Pie slices; negative contributions are floored at zero."""
    values = {
        "sales_margin": stats.sales_margin,
        "repair_costs": stats.total_repair_cost,
        "materiel_costs": stats.total_materiel_cost,
    }
    return [
        {
            "key": key,
            "name": label,
            "value": to_float(max(values[key], ZERO)),
            "color": color,
        }
        for key, label, color in BREAKDOWN_SLICES
    ]


def expenses_by_category(filtered: AnalyticsDataset) -> list[dict]:
    totals: dict[str, Decimal] = {category: ZERO for category in MATERIEL_CATEGORIES}
    for expense in filtered.expenses:
        totals[expense.category] = totals.get(expense.category, ZERO) + expense.amount
    return [{"category": category, "total": to_float(total)} for category, total in totals.items()]


def stock_summary(stock_pieces: Iterable[StockRecord], low_threshold: int = LOW_STOCK_THRESHOLD) -> dict:
    pieces = list(stock_pieces)
    return {
        "total_value": to_float(sum((s.value for s in pieces), ZERO)),
        "total_pieces": sum(s.quantity for s in pieces),
        "low_stock_count": sum(1 for s in pieces if s.quantity < low_threshold),
        "low_stock_threshold": low_threshold,
    }


@dataclass
class AnalyticsReport:
    time_range: str
    start: datetime
    generated_at: datetime
    stats: SummaryStats
    series: list[dict] = field(default_factory=list)
    breakdown: list[dict] = field(default_factory=list)
    by_category: list[dict] = field(default_factory=list)
    stock: dict = field(default_factory=dict)
    record_count: int = 0

    def to_dict(self) -> dict:
        return {
            "time_range": self.time_range,
            "start": to_utc_z(self.start) if self.time_range != "all" else None,
            "generated_at": to_utc_z(self.generated_at),
            "record_count": self.record_count,
            "stats": self.stats.to_dict(),
            "series": self.series,
            "breakdown": self.breakdown,
            "expenses_by_category": self.by_category,
            "stock_summary": self.stock,
        }


def build_report(
    dataset: AnalyticsDataset,
    time_range: str = DEFAULT_TIME_RANGE,
    now: datetime | None = None,
) -> AnalyticsReport:
    now = now or utcnow()
    start = resolve_start_date(time_range, now)
    filtered = filter_by_time_range(dataset, time_range, now)
    stats = compute_stats(filtered, all_repairs=dataset.repairs)
    return AnalyticsReport(
        time_range=time_range,
        start=start,
        generated_at=now,
        stats=stats,
        series=build_time_series(filtered),
        breakdown=build_breakdown(stats),
        by_category=expenses_by_category(filtered),
        stock=stock_summary(dataset.stock_pieces),
        record_count=filtered.record_count,
    )
