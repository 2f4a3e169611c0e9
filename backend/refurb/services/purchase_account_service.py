# Overview: Service-layer operations for purchase accounts.

from __future__ import annotations

from ..extensions import db
from ..models import Phone, PurchaseAccount
from ..validation import optional_text, require_text
from .errors import NotFoundError, ValidationError

DEFAULT_COLOR = "#8b5cf6"
DEFAULT_ICON = "shopping-bag"


def list_accounts(*, user_id: int) -> list[dict]:
    accounts = (
        db.session.query(PurchaseAccount)
        .filter(PurchaseAccount.user_id == user_id)
        .order_by(PurchaseAccount.name.asc())
        .all()
    )
    return [a.to_dict() for a in accounts]


def create_account(*, user_id: int, patch: dict) -> PurchaseAccount:
    name = require_text(patch, "name", max_length=120)
    if db.session.query(PurchaseAccount).filter_by(user_id=user_id, name=name).first() is not None:
        raise ValidationError("A purchase account with this name already exists")

    account = PurchaseAccount(
        user_id=user_id,
        name=name,
        color=optional_text(patch, "color", default=DEFAULT_COLOR, max_length=32) or DEFAULT_COLOR,
        icon=optional_text(patch, "icon", default=DEFAULT_ICON, max_length=64) or DEFAULT_ICON,
    )
    db.session.add(account)
    db.session.commit()
    return account


def delete_account(account_id: int, *, user_id: int) -> None:
    """Delete an account. Phones bought through it keep a NULL reference."""
    account = db.session.query(PurchaseAccount).filter_by(id=account_id, user_id=user_id).first()
    if account is None:
        raise NotFoundError("Purchase account not found")

    db.session.query(Phone).filter(
        Phone.user_id == user_id, Phone.purchase_account_id == account.id
    ).update({Phone.purchase_account_id: None}, synchronize_session=False)
    db.session.delete(account)
    db.session.commit()
