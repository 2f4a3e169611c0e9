# Overview: Service-layer operations for the repair-parts ledger; keeps stock and repair cost in step.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Repair, RepairPart, StockPiece
from refurb.money import ZERO, coerce_amount, to_float
from .concurrency import InFlightGuard, lock_for_update
from .errors import (
    InsufficientStockError,
    NotFoundError,
    ServiceError,
    ServiceResult,
    TransientStoreError,
    ValidationError,
)
"""
Repair-parts ledger invariants (authoritative)

- consume(repair, piece, q): 1 <= q <= piece.quantity. Creates a RepairPart,
  decrements piece.quantity by q and recomputes the repair's total cost,
  all in one DB transaction. Nothing is written if any check fails.
- release(part): deletes the RepairPart, restores piece.quantity and
  recomputes the repair's total cost, in one transaction. Releasing an
  already-released part is NotFound (stock is never credited twice).
- total cost = labor_cost + sum(unit_price * quantity_used) over current
  parts. Repair.total_cost is only ever written by recompute_total_cost;
  it is never adjusted incrementally.
- Stock conservation: for each piece,
  quantity + sum(quantity_used over current parts) is constant
  except for direct edits of the piece.
- Operations on one repair run one at a time (in-flight guard per repair id).
"""


_repair_guard = InFlightGuard("repair")


def _get_owned_repair(repair_id: int, user_id: int) -> Repair:
    repair = db.session.query(Repair).filter_by(id=repair_id, user_id=user_id).first()
    if repair is None:
        raise NotFoundError("Repair not found")
    return repair


def _get_owned_piece(stock_piece_id: int, user_id: int, *, lock: bool = False) -> StockPiece:
    query = db.session.query(StockPiece).filter_by(id=stock_piece_id, user_id=user_id)
    if lock:
        query = lock_for_update(query)
    piece = query.first()
    if piece is None:
        raise NotFoundError("Stock piece not found")
    return piece


def _get_owned_part(repair_part_id: int, user_id: int) -> RepairPart:
    part = (
        db.session.query(RepairPart)
        .join(Repair, RepairPart.repair_id == Repair.id)
        .filter(RepairPart.id == repair_part_id, Repair.user_id == user_id)
        .first()
    )
    if part is None:
        raise NotFoundError("Repair part not found")
    return part


def _parse_quantity(quantity) -> int:
    if isinstance(quantity, bool):
        raise ValidationError("quantity must be an integer")
    if isinstance(quantity, str):
        stripped = quantity.strip()
        if not (stripped.isascii() and stripped.isdigit()):
            raise ValidationError("quantity must be an integer")
        quantity = int(stripped)
    if not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    return quantity


def parts_cost(repair_id: int) -> Decimal:
    """Sum of unit_price * quantity_used over the repair's current parts."""
    parts = db.session.query(RepairPart).filter_by(repair_id=repair_id).all()
    return sum((part.line_total for part in parts), ZERO)


def recompute_total_cost(repair: Repair) -> Decimal:
    """
    Write repair.total_cost from labor_cost and the live parts.

    Flushes first so parts added or deleted in this transaction are counted.
    Does not commit.
    """
    db.session.flush()
    total = coerce_amount(repair.labor_cost) + parts_cost(repair.id)
    repair.total_cost = total
    return total


def _run_write(repair_id: int, operation) -> ServiceResult:
    try:
        with _repair_guard.hold(repair_id):
            result = operation()
            db.session.commit()
            return ServiceResult.ok(result)
    except ServiceError as exc:
        db.session.rollback()
        return ServiceResult.fail(exc)
    except SQLAlchemyError:
        db.session.rollback()
        return ServiceResult.fail(TransientStoreError("Could not update stock; nothing was changed"))


def consume(repair_id: int, stock_piece_id: int, quantity, *, user_id: int) -> ServiceResult:
    """
    Take `quantity` units of a stock piece for a repair.

    Fails with validation_error (bad quantity), not_found (repair or piece
    not owned), insufficient_stock (details carry `available`) or conflict.
    On success, data holds the new part, piece quantity and repair cost.
    """
    try:
        quantity = _parse_quantity(quantity)
    except ValidationError as exc:
        return ServiceResult.fail(exc)

    def _consume():
        repair = _get_owned_repair(repair_id, user_id)
        piece = _get_owned_piece(stock_piece_id, user_id, lock=True)

        if quantity > piece.quantity:
            raise InsufficientStockError(available=piece.quantity, requested=quantity)

        part = RepairPart(
            repair_id=repair.id,
            stock_piece_id=piece.id,
            quantity_used=quantity,
            unit_price=coerce_amount(piece.purchase_price),
        )
        db.session.add(part)
        piece.quantity -= quantity
        total = recompute_total_cost(repair)
        return {
            "repair_part": part.to_dict(),
            "stock_piece_id": piece.id,
            "stock_quantity": piece.quantity,
            "repair_id": repair.id,
            "repair_total_cost": to_float(total),
        }

    return _run_write(repair_id, _consume)


def release(repair_part_id: int, *, user_id: int) -> ServiceResult:
    """
    Undo a consumption: delete the part, put its units back, lower the repair cost.

    The UI asks for confirmation first; this function does not.
    """
    try:
        part = _get_owned_part(repair_part_id, user_id)
    except ServiceError as exc:
        return ServiceResult.fail(exc)
    except SQLAlchemyError:
        db.session.rollback()
        return ServiceResult.fail(TransientStoreError("Could not read the repair part"))

    repair_id = part.repair_id

    def _release():
        # Re-read inside the guard: a concurrent release may have removed it
        current = _get_owned_part(repair_part_id, user_id)
        repair = _get_owned_repair(current.repair_id, user_id)
        piece = _get_owned_piece(current.stock_piece_id, user_id, lock=True)

        released = current.quantity_used
        repair.parts.remove(current)
        db.session.delete(current)
        piece.quantity += released
        total = recompute_total_cost(repair)
        return {
            "repair_part_id": repair_part_id,
            "released_quantity": released,
            "stock_piece_id": piece.id,
            "stock_quantity": piece.quantity,
            "repair_id": repair.id,
            "repair_total_cost": to_float(total),
        }

    return _run_write(repair_id, _release)


def release_all(repair: Repair) -> int:
    """
    Return every part of a repair to stock, inside the caller's transaction.

    Used before deleting a repair. Returns the number of parts released.
    Does not commit.
    """
    count = 0
    for part in list(repair.parts):
        piece = db.session.get(StockPiece, part.stock_piece_id)
        if piece is not None:
            piece.quantity += part.quantity_used
        repair.parts.remove(part)
        db.session.delete(part)
        count += 1
    recompute_total_cost(repair)
    return count


def total_cost(repair_id: int, *, user_id: int) -> ServiceResult:
    """labor_cost + live parts sum, computed fresh (not read from the cached column)."""
    try:
        repair = _get_owned_repair(repair_id, user_id)
        total = coerce_amount(repair.labor_cost) + parts_cost(repair.id)
    except ServiceError as exc:
        return ServiceResult.fail(exc)
    except SQLAlchemyError:
        db.session.rollback()
        return ServiceResult.fail(TransientStoreError("Could not read the repair"))
    return ServiceResult.ok(total)


def list_parts(repair_id: int, *, user_id: int) -> ServiceResult:
    try:
        repair = _get_owned_repair(repair_id, user_id)
        parts = db.session.query(RepairPart).filter_by(repair_id=repair.id).order_by(RepairPart.id).all()
    except ServiceError as exc:
        return ServiceResult.fail(exc)
    except SQLAlchemyError:
        db.session.rollback()
        return ServiceResult.fail(TransientStoreError("Could not read the repair parts"))
    return ServiceResult.ok({
        "repair_id": repair.id,
        "parts": [part.to_dict() for part in parts],
        "parts_cost": to_float(sum((part.line_total for part in parts), ZERO)),
        "labor_cost": to_float(repair.labor_cost),
        "total_cost": to_float(coerce_amount(repair.labor_cost) + sum((p.line_total for p in parts), ZERO)),
    })
