# Overview: Service-layer operations for repairs; encapsulates business logic and database work.

"""
Repair jobs and their status machine.

    pending -> in_progress -> completed | failed
    pending -> completed | failed

- started_at is set once, on the first entry into in_progress
- completed_at is set on entry into completed/failed; terminal states do
  not transition again, so it is never rewritten
- total_cost is recomputed by the ledger whenever labor_cost changes
"""
from __future__ import annotations

from sqlalchemy import case

from ..extensions import db
from ..models import Phone, Repair, REPAIR_STATUSES
from ..validation import amount_field, optional_text, require_text
from refurb.time_utils import utcnow
from . import ledger_service
from .errors import NotFoundError, ValidationError

ALLOWED_TRANSITIONS = {
    "pending": {"in_progress", "completed", "failed"},
    "in_progress": {"completed", "failed"},
    "completed": set(),
    "failed": set(),
}

TERMINAL_STATUSES = {"completed", "failed"}

# List ordering: active work first
STATUS_PRIORITY = {"in_progress": 0, "pending": 1, "completed": 2, "failed": 3}

REPAIR_MUTABLE_FIELDS = {"description", "repair_list", "labor_cost", "technician", "photo_url"}


def get_repair(repair_id: int, *, user_id: int) -> Repair:
    repair = db.session.query(Repair).filter_by(id=repair_id, user_id=user_id).first()
    if repair is None:
        raise NotFoundError("Repair not found")
    return repair


def list_repairs(
    *,
    user_id: int,
    status: str = "all",
    phone_id: int | None = None,
    include_archived: bool = False,
) -> dict:
    if status != "all" and status not in REPAIR_STATUSES:
        raise ValidationError(f"status must be 'all' or one of: {', '.join(REPAIR_STATUSES)}")

    priority = case(STATUS_PRIORITY, value=Repair.status, else_=len(STATUS_PRIORITY))
    query = db.session.query(Repair).filter(Repair.user_id == user_id)
    if not include_archived:
        query = query.filter(Repair.archived.is_(False))
    if status != "all":
        query = query.filter(Repair.status == status)
    if phone_id is not None:
        query = query.filter(Repair.phone_id == phone_id)

    repairs = query.order_by(priority, Repair.created_at.desc(), Repair.id.desc()).all()
    return {
        "items": [r.to_dict() for r in repairs],
        "count": len(repairs),
    }


def create_repair(*, user_id: int, patch: dict) -> Repair:
    phone_id = patch.get("phone_id")
    if phone_id is None:
        raise ValidationError("phone_id is required")
    phone = db.session.query(Phone).filter_by(id=phone_id, user_id=user_id).first()
    if phone is None:
        raise NotFoundError("Phone not found")

    labor_cost = amount_field(patch, "labor_cost", default=patch.get("cost", 0))
    repair = Repair(
        user_id=user_id,
        phone_id=phone.id,
        description=require_text(patch, "description"),
        repair_list=optional_text(patch, "repair_list"),
        labor_cost=labor_cost,
        total_cost=labor_cost,
        status="pending",
        technician=optional_text(patch, "technician", default=None, max_length=120) or None,
        photo_url=optional_text(patch, "photo_url", default=None, max_length=512) or None,
        archived=False,
    )
    db.session.add(repair)
    db.session.commit()
    return repair


def update_repair(repair_id: int, *, user_id: int, patch: dict) -> Repair:
    repair = get_repair(repair_id, user_id=user_id)
    patch = {k: v for k, v in patch.items() if k in REPAIR_MUTABLE_FIELDS}

    if "description" in patch:
        repair.description = require_text(patch, "description")
    if "repair_list" in patch:
        repair.repair_list = optional_text(patch, "repair_list")
    if "technician" in patch:
        repair.technician = optional_text(patch, "technician", default=None, max_length=120) or None
    if "photo_url" in patch:
        repair.photo_url = optional_text(patch, "photo_url", default=None, max_length=512) or None
    if "labor_cost" in patch:
        repair.labor_cost = amount_field(patch, "labor_cost")
        ledger_service.recompute_total_cost(repair)

    db.session.commit()
    return repair


def change_status(repair_id: int, *, user_id: int, status: str, now=None) -> Repair:
    if status not in REPAIR_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(REPAIR_STATUSES)}")

    repair = get_repair(repair_id, user_id=user_id)
    if status == repair.status:
        return repair
    if status not in ALLOWED_TRANSITIONS.get(repair.status, set()):
        raise ValidationError(f"Cannot move a repair from {repair.status} to {status}")

    now = now or utcnow()
    if status == "in_progress" and repair.started_at is None:
        repair.started_at = now
    if status in TERMINAL_STATUSES and repair.completed_at is None:
        repair.completed_at = now
    repair.status = status

    db.session.commit()
    return repair


def archive_repair(repair_id: int, *, user_id: int, archived: bool = True) -> Repair:
    repair = get_repair(repair_id, user_id=user_id)
    repair.archived = archived
    db.session.commit()
    return repair


def delete_repair(repair_id: int, *, user_id: int) -> int:
    """Delete a repair after returning its consumed parts to stock. Returns parts released."""
    repair = get_repair(repair_id, user_id=user_id)
    released = ledger_service.release_all(repair)
    db.session.delete(repair)
    db.session.commit()
    return released
