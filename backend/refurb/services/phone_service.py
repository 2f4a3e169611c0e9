# Overview: Service-layer operations for phones; encapsulates business logic and database work.

"""
Phones (inventory units).

Every operation is scoped to user_id. Another user's phone is NotFound.
Sale fields move together: mark_sold writes price + date + flag,
mark_unsold clears all three. Archiving is only allowed once sold.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Phone, PurchaseAccount, PHONE_CONDITIONS
from ..validation import (
    amount_field,
    choice_field,
    date_field,
    optional_text,
    require_text,
)
from refurb.money import ZERO
from refurb.time_utils import today
from .errors import NotFoundError, ValidationError

PHONE_MUTABLE_FIELDS = {
    "model", "storage", "color", "imei", "condition",
    "purchase_price", "purchase_date", "purchase_account_id", "notes", "qr_code",
}

PHONE_FILTERS = ("all", "available", "sold")

DUPLICATE_IMEI_SUFFIX = "-COPIE"


def _validate_fields(patch: dict, *, creating: bool) -> dict:
    clean: dict = {}
    if creating or "model" in patch:
        clean["model"] = require_text(patch, "model", max_length=120)
    if creating or "imei" in patch:
        clean["imei"] = require_text(patch, "imei", max_length=64)
    if creating or "storage" in patch:
        clean["storage"] = optional_text(patch, "storage", max_length=32)
    if creating or "color" in patch:
        clean["color"] = optional_text(patch, "color", max_length=64)
    if creating or "condition" in patch:
        clean["condition"] = choice_field(patch, "condition", PHONE_CONDITIONS, default="Very Good")
    if creating or "purchase_price" in patch:
        clean["purchase_price"] = amount_field(patch, "purchase_price")
    if creating or "purchase_date" in patch:
        clean["purchase_date"] = date_field(patch, "purchase_date", default=today() if creating else None)
    if creating or "notes" in patch:
        clean["notes"] = optional_text(patch, "notes")
    if "qr_code" in patch:
        clean["qr_code"] = optional_text(patch, "qr_code", default=None)
    if "purchase_account_id" in patch:
        clean["purchase_account_id"] = patch["purchase_account_id"]
    return clean


def _check_purchase_account(account_id, user_id: int) -> None:
    if account_id is None:
        return
    account = db.session.query(PurchaseAccount).filter_by(id=account_id, user_id=user_id).first()
    if account is None:
        raise NotFoundError("Purchase account not found")


def _check_imei_free(imei: str, user_id: int, exclude_id: int | None = None) -> None:
    query = db.session.query(Phone).filter(Phone.user_id == user_id, Phone.imei == imei)
    if exclude_id is not None:
        query = query.filter(Phone.id != exclude_id)
    if query.first() is not None:
        raise ValidationError("A phone with this IMEI already exists")


def get_phone(phone_id: int, *, user_id: int) -> Phone:
    phone = db.session.query(Phone).filter_by(id=phone_id, user_id=user_id).first()
    if phone is None:
        raise NotFoundError("Phone not found")
    return phone


def list_phones(
    *,
    user_id: int,
    status: str = "all",
    search: str | None = None,
    include_archived: bool = False,
) -> dict:
    """
    List phones, newest first.

    status: all | available | sold. search matches model, IMEI or color.
    """
    if status not in PHONE_FILTERS:
        raise ValidationError(f"status must be one of: {', '.join(PHONE_FILTERS)}")

    query = db.session.query(Phone).filter(Phone.user_id == user_id)
    if not include_archived:
        query = query.filter(Phone.archived.is_(False))
    if status == "sold":
        query = query.filter(Phone.is_sold.is_(True))
    elif status == "available":
        query = query.filter(Phone.is_sold.is_(False))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Phone.model.ilike(like), Phone.imei.ilike(like), Phone.color.ilike(like)))

    phones = query.order_by(Phone.created_at.desc(), Phone.id.desc()).all()
    return {
        "items": [p.to_dict() for p in phones],
        "count": len(phones),
    }


def create_phone(*, user_id: int, patch: dict) -> Phone:
    clean = _validate_fields(patch, creating=True)
    _check_imei_free(clean["imei"], user_id)
    _check_purchase_account(clean.get("purchase_account_id"), user_id)

    phone = Phone(user_id=user_id, is_sold=False, archived=False, **clean)
    db.session.add(phone)
    db.session.commit()
    return phone


def update_phone(phone_id: int, *, user_id: int, patch: dict) -> Phone:
    """Edit descriptive/purchase fields. Sale fields go through mark_sold / mark_unsold."""
    phone = get_phone(phone_id, user_id=user_id)
    clean = _validate_fields({k: v for k, v in patch.items() if k in PHONE_MUTABLE_FIELDS}, creating=False)
    if "imei" in clean:
        _check_imei_free(clean["imei"], user_id, exclude_id=phone.id)
    if "purchase_account_id" in clean:
        _check_purchase_account(clean["purchase_account_id"], user_id)

    for key, value in clean.items():
        setattr(phone, key, value)
    db.session.commit()
    return phone


def mark_sold(phone_id: int, *, user_id: int, sale_price, sale_date=None) -> Phone:
    phone = get_phone(phone_id, user_id=user_id)
    price = ZERO if sale_price is None else amount_field({"sale_price": sale_price}, "sale_price")
    when = date_field({"sale_date": sale_date}, "sale_date", default=today())

    phone.is_sold = True
    phone.sale_price = price
    phone.sale_date = when
    db.session.commit()
    return phone


def mark_unsold(phone_id: int, *, user_id: int) -> Phone:
    phone = get_phone(phone_id, user_id=user_id)
    if phone.archived:
        raise ValidationError("Archived phones cannot be put back on sale")
    phone.is_sold = False
    phone.sale_price = None
    phone.sale_date = None
    db.session.commit()
    return phone


def archive_phone(phone_id: int, *, user_id: int, archived: bool = True) -> Phone:
    phone = get_phone(phone_id, user_id=user_id)
    if archived and not phone.sale_state.is_sold:
        raise ValidationError("Only sold phones can be archived")
    phone.archived = archived
    db.session.commit()
    return phone


def delete_phone(phone_id: int, *, user_id: int) -> None:
    """Hard delete. Repairs stay, with phone_id set to NULL."""
    phone = get_phone(phone_id, user_id=user_id)
    for repair in list(phone.repairs):
        repair.phone_id = None
    db.session.delete(phone)
    db.session.commit()


def duplicate_phone(phone_id: int, *, user_id: int) -> Phone:
    """Copy a unit as a new, unsold phone. IMEI gets a suffix to stay unique."""
    source = get_phone(phone_id, user_id=user_id)

    imei = f"{source.imei}{DUPLICATE_IMEI_SUFFIX}"
    n = 2
    while db.session.query(Phone).filter_by(user_id=user_id, imei=imei).first() is not None:
        imei = f"{source.imei}{DUPLICATE_IMEI_SUFFIX}{n}"
        n += 1

    copy = Phone(
        user_id=user_id,
        model=source.model,
        storage=source.storage,
        color=source.color,
        imei=imei,
        condition=source.condition,
        purchase_price=source.purchase_price,
        purchase_date=source.purchase_date,
        purchase_account_id=source.purchase_account_id,
        notes=source.notes,
        qr_code=None,
        is_sold=False,
        archived=False,
    )
    db.session.add(copy)
    db.session.commit()
    return copy
