from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Union

from ..extensions import db
from refurb.money import coerce_amount, to_float
from refurb.time_utils import parse_iso_date, to_iso_date, to_utc_z, utcnow


PHONE_CONDITIONS = ("New", "Excellent", "Very Good", "Average", "Poor")

REPAIR_STATUSES = ("pending", "in_progress", "completed", "failed")

MATERIEL_CATEGORIES = ("Outils", "Consommables", "Colle", "Nettoyage", "Emballage", "Autres")

# Status strings older rows may carry instead of the is_sold flag
LEGACY_SOLD_STATUSES = {"sold", "vendu"}


@dataclass(frozen=True)
class Unsold:
    """Phone still in inventory."""

    is_sold = False


@dataclass(frozen=True)
class Sold:
    """Phone sold. price is never None (a missing price counts as 0)."""

    price: Decimal
    date: date | None

    is_sold = True


SaleState = Union[Unsold, Sold]


def normalize_sale_state(
    is_sold=None,
    sale_price=None,
    sale_date=None,
    status: str | None = None,
) -> SaleState:
    """
    Collapse every stored shape of "this phone is sold" into one value.

    A phone is sold when the flag is set, a legacy status string says so, or
    a sale date is present. Sale fields on an unsold phone are ignored.
    """
    sold = bool(is_sold)
    if not sold and isinstance(status, str) and status.strip().lower() in LEGACY_SOLD_STATUSES:
        sold = True

    try:
        parsed_date = parse_iso_date(sale_date)
    except ValueError:
        parsed_date = None

    if not sold and parsed_date is not None:
        sold = True

    if not sold:
        return Unsold()
    return Sold(price=coerce_amount(sale_price), date=parsed_date)


class PurchaseAccount(db.Model):
    """Named, colored tag a phone purchase can be attributed to (e.g. a marketplace identity)."""
    __tablename__ = "purchase_accounts"
    __table_args__ = (
        db.UniqueConstraint("user_id", "name", name="uq_purchase_accounts_user_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(32), nullable=False, default="#8b5cf6")
    icon = db.Column(db.String(64), nullable=False, default="shopping-bag")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "created_at": to_utc_z(self.created_at),
        }


class Phone(db.Model):
    """
    A unit of inventory.

    sale_price / sale_date are only meaningful while is_sold is True; the
    service layer writes them together and clears them together. Read them
    through sale_state rather than the raw columns.
    """
    __tablename__ = "phones"
    __table_args__ = (
        db.UniqueConstraint("user_id", "imei", name="uq_phones_user_imei"),
        db.Index("ix_phones_user_sold", "user_id", "is_sold"),
        db.CheckConstraint("purchase_price >= 0", name="ck_phones_purchase_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    model = db.Column(db.String(120), nullable=False)
    storage = db.Column(db.String(32), nullable=False, default="")
    color = db.Column(db.String(64), nullable=False, default="")
    imei = db.Column(db.String(64), nullable=False)
    condition = db.Column(db.String(32), nullable=False, default="Very Good")

    purchase_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    purchase_date = db.Column(db.Date, nullable=False)
    purchase_account_id = db.Column(
        db.Integer, db.ForeignKey("purchase_accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )

    notes = db.Column(db.Text, nullable=False, default="")

    is_sold = db.Column(db.Boolean, nullable=False, default=False)
    sale_price = db.Column(db.Numeric(10, 2), nullable=True)
    sale_date = db.Column(db.Date, nullable=True)

    # Opaque payload rendered by the front-end
    qr_code = db.Column(db.Text, nullable=True)

    archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    purchase_account = db.relationship("PurchaseAccount", backref=db.backref("phones", lazy=True))

    @property
    def sale_state(self) -> SaleState:
        return normalize_sale_state(self.is_sold, self.sale_price, self.sale_date)

    def __repr__(self) -> str:
        return f"<Phone id={self.id} model={self.model!r} imei={self.imei!r}>"

    def to_dict(self) -> dict:
        state = self.sale_state
        return {
            "id": self.id,
            "user_id": self.user_id,
            "model": self.model,
            "storage": self.storage,
            "color": self.color,
            "imei": self.imei,
            "condition": self.condition,
            "purchase_price": to_float(self.purchase_price),
            "purchase_date": to_iso_date(self.purchase_date),
            "purchase_account_id": self.purchase_account_id,
            "notes": self.notes,
            "is_sold": state.is_sold,
            "sale_price": to_float(state.price) if state.is_sold else None,
            "sale_date": to_iso_date(state.date) if state.is_sold else None,
            "qr_code": self.qr_code,
            "archived": self.archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Repair(db.Model):
    """
    A repair job against one phone.

    labor_cost is what the user typed in. total_cost is always recomputed as
    labor_cost + sum(unit_price * quantity_used) over current parts by the
    ledger; nothing else writes it.

    phone_id is nulled (not cascaded) when the phone is deleted.
    """
    __tablename__ = "repairs"
    __table_args__ = (
        db.Index("ix_repairs_user_status", "user_id", "status"),
        db.CheckConstraint("labor_cost >= 0", name="ck_repairs_labor_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    phone_id = db.Column(db.Integer, db.ForeignKey("phones.id", ondelete="SET NULL"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=False, default="")
    repair_list = db.Column(db.Text, nullable=False, default="")

    labor_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    technician = db.Column(db.String(120), nullable=True)
    photo_url = db.Column(db.String(512), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    phone = db.relationship("Phone", backref=db.backref("repairs", lazy=True, passive_deletes=True))
    parts = db.relationship(
        "RepairPart",
        back_populates="repair",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RepairPart.id",
    )

    @property
    def parts_cost(self) -> Decimal:
        return Decimal(self.total_cost or 0) - Decimal(self.labor_cost or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "phone_id": self.phone_id,
            "description": self.description,
            "repair_list": self.repair_list,
            "labor_cost": to_float(self.labor_cost),
            "parts_cost": to_float(self.parts_cost),
            "cost": to_float(self.total_cost),
            "status": self.status,
            "technician": self.technician,
            "photo_url": self.photo_url,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "archived": self.archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockPiece(db.Model):
    """
    Spare-part SKU with an on-hand quantity.

    quantity never goes negative. Apart from direct edits, it only moves
    through the ledger (consume decrements, release increments).
    """
    __tablename__ = "stock_pieces"
    __table_args__ = (
        db.Index("ix_stock_pieces_user_name", "user_id", "name"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_pieces_quantity_nonneg"),
        db.CheckConstraint("purchase_price >= 0", name="ck_stock_pieces_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    purchase_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    supplier = db.Column(db.String(255), nullable=False, default="")
    supplier_link = db.Column(db.String(1024), nullable=False, default="")

    # Optional tag, e.g. "iPhone 12"
    phone_model = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<StockPiece id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "purchase_price": to_float(self.purchase_price),
            "quantity": self.quantity,
            "stock_value": to_float(coerce_amount(self.purchase_price) * (self.quantity or 0)),
            "supplier": self.supplier,
            "supplier_link": self.supplier_link,
            "phone_model": self.phone_model,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RepairPart(db.Model):
    """
    Consumption of a stock piece by a repair.

    unit_price is the piece's purchase price at the time of consumption, so a
    later price edit on the piece does not move an existing repair's cost.
    """
    __tablename__ = "repair_parts"
    __table_args__ = (
        db.CheckConstraint("quantity_used >= 1", name="ck_repair_parts_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id", ondelete="CASCADE"), nullable=False, index=True)
    stock_piece_id = db.Column(db.Integer, db.ForeignKey("stock_pieces.id"), nullable=False, index=True)

    quantity_used = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    repair = db.relationship("Repair", back_populates="parts")
    stock_piece = db.relationship("StockPiece", backref=db.backref("repair_parts", lazy=True))

    @property
    def line_total(self) -> Decimal:
        return coerce_amount(self.unit_price) * int(self.quantity_used or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "repair_id": self.repair_id,
            "stock_piece_id": self.stock_piece_id,
            "stock_piece_name": self.stock_piece.name if self.stock_piece else None,
            "quantity_used": self.quantity_used,
            "unit_price": to_float(self.unit_price),
            "line_total": to_float(self.line_total),
            "created_at": to_utc_z(self.created_at),
        }


class MaterielExpense(db.Model):
    """Tools / consumables spend. Not linked to phones or repairs."""
    __tablename__ = "materiel_expenses"
    __table_args__ = (
        db.Index("ix_materiel_expenses_user_date", "user_id", "purchase_date"),
        db.CheckConstraint("amount >= 0", name="ck_materiel_expenses_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    category = db.Column(db.String(32), nullable=False, default="Autres")
    purchase_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "description": self.description,
            "amount": to_float(self.amount),
            "category": self.category,
            "purchase_date": to_iso_date(self.purchase_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
