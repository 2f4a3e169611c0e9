# Overview: Service-layer operations for materiel (tools / consumables) expenses.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import MaterielExpense, MATERIEL_CATEGORIES
from ..validation import amount_field, choice_field, date_field, optional_text, require_text
from refurb.money import ZERO, coerce_amount, format_eur, to_float
from refurb.time_utils import today
from .errors import NotFoundError, ValidationError

EXPENSE_MUTABLE_FIELDS = {"description", "amount", "category", "purchase_date", "notes"}


def _validate_fields(patch: dict, *, creating: bool) -> dict:
    clean: dict = {}
    if creating or "description" in patch:
        clean["description"] = require_text(patch, "description")
    if creating or "amount" in patch:
        clean["amount"] = amount_field(patch, "amount")
    if creating or "category" in patch:
        clean["category"] = choice_field(patch, "category", MATERIEL_CATEGORIES, default="Autres")
    if creating or "purchase_date" in patch:
        clean["purchase_date"] = date_field(patch, "purchase_date", default=today() if creating else None)
    if creating or "notes" in patch:
        clean["notes"] = optional_text(patch, "notes")
    return clean


def get_expense(expense_id: int, *, user_id: int) -> MaterielExpense:
    expense = db.session.query(MaterielExpense).filter_by(id=expense_id, user_id=user_id).first()
    if expense is None:
        raise NotFoundError("Expense not found")
    return expense


def list_expenses(*, user_id: int, category: str | None = None) -> dict:
    if category and category not in MATERIEL_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(MATERIEL_CATEGORIES)}")

    query = db.session.query(MaterielExpense).filter(MaterielExpense.user_id == user_id)
    if category:
        query = query.filter(MaterielExpense.category == category)
    expenses = query.order_by(MaterielExpense.purchase_date.desc(), MaterielExpense.id.desc()).all()

    total = sum((coerce_amount(e.amount) for e in expenses), ZERO)
    return {
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total": to_float(total),
        "total_display": format_eur(total),
    }


def totals_by_category(*, user_id: int) -> list[dict]:
    """One row per known category, zero-filled, in display order."""
    rows = (
        db.session.query(MaterielExpense.category, func.coalesce(func.sum(MaterielExpense.amount), 0))
        .filter(MaterielExpense.user_id == user_id)
        .group_by(MaterielExpense.category)
        .all()
    )
    totals = {category: coerce_amount(amount) for category, amount in rows}
    return [
        {"category": category, "total": to_float(totals.get(category, ZERO))}
        for category in MATERIEL_CATEGORIES
    ]


def create_expense(*, user_id: int, patch: dict) -> MaterielExpense:
    expense = MaterielExpense(user_id=user_id, **_validate_fields(patch, creating=True))
    db.session.add(expense)
    db.session.commit()
    return expense


def update_expense(expense_id: int, *, user_id: int, patch: dict) -> MaterielExpense:
    expense = get_expense(expense_id, user_id=user_id)
    clean = _validate_fields({k: v for k, v in patch.items() if k in EXPENSE_MUTABLE_FIELDS}, creating=False)
    for key, value in clean.items():
        setattr(expense, key, value)
    db.session.commit()
    return expense


def delete_expense(expense_id: int, *, user_id: int) -> None:
    expense = get_expense(expense_id, user_id=user_id)
    db.session.delete(expense)
    db.session.commit()
