# Overview: Service-layer operations for spare-part stock; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import RepairPart, StockPiece
from ..validation import amount_field, int_field, optional_text, require_text
from .analytics_service import LOW_STOCK_THRESHOLD, StockRecord, stock_summary
from .errors import NotFoundError, ValidationError

STOCK_MUTABLE_FIELDS = {
    "name", "description", "purchase_price", "quantity",
    "supplier", "supplier_link", "phone_model",
}


def _validate_fields(patch: dict, *, creating: bool) -> dict:
    clean: dict = {}
    if creating or "name" in patch:
        clean["name"] = require_text(patch, "name")
    if creating or "description" in patch:
        clean["description"] = optional_text(patch, "description")
    if creating or "purchase_price" in patch:
        clean["purchase_price"] = amount_field(patch, "purchase_price", default=0 if creating else None)
    if creating or "quantity" in patch:
        clean["quantity"] = int_field(patch, "quantity", default=0 if creating else None, minimum=0)
    if creating or "supplier" in patch:
        clean["supplier"] = optional_text(patch, "supplier", max_length=255)
    if creating or "supplier_link" in patch:
        clean["supplier_link"] = optional_text(patch, "supplier_link", max_length=1024)
    if "phone_model" in patch:
        clean["phone_model"] = optional_text(patch, "phone_model", default=None, max_length=120) or None
    return clean


def get_piece(stock_piece_id: int, *, user_id: int) -> StockPiece:
    piece = db.session.query(StockPiece).filter_by(id=stock_piece_id, user_id=user_id).first()
    if piece is None:
        raise NotFoundError("Stock piece not found")
    return piece


def list_pieces(*, user_id: int, search: str | None = None) -> dict:
    query = db.session.query(StockPiece).filter(StockPiece.user_id == user_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            StockPiece.name.ilike(like),
            StockPiece.supplier.ilike(like),
            StockPiece.phone_model.ilike(like),
        ))
    pieces = query.order_by(StockPiece.created_at.desc(), StockPiece.id.desc()).all()
    return {
        "items": [p.to_dict() for p in pieces],
        "count": len(pieces),
    }


def list_available(*, user_id: int) -> list[dict]:
    """Pieces that can be picked for a repair (quantity > 0), by name."""
    pieces = (
        db.session.query(StockPiece)
        .filter(StockPiece.user_id == user_id, StockPiece.quantity > 0)
        .order_by(StockPiece.name.asc(), StockPiece.id.asc())
        .all()
    )
    return [p.to_dict() for p in pieces]


def list_low_stock(*, user_id: int, threshold: int = LOW_STOCK_THRESHOLD) -> list[StockPiece]:
    return (
        db.session.query(StockPiece)
        .filter(StockPiece.user_id == user_id, StockPiece.quantity < threshold)
        .order_by(StockPiece.quantity.asc(), StockPiece.name.asc())
        .all()
    )


def summary(*, user_id: int) -> dict:
    pieces = db.session.query(StockPiece).filter(StockPiece.user_id == user_id).all()
    return stock_summary(StockRecord.from_row(p) for p in pieces)


def create_piece(*, user_id: int, patch: dict) -> StockPiece:
    clean = _validate_fields(patch, creating=True)
    piece = StockPiece(user_id=user_id, **clean)
    db.session.add(piece)
    db.session.commit()
    return piece


def update_piece(stock_piece_id: int, *, user_id: int, patch: dict) -> StockPiece:
    """
    Edit a piece. A quantity given here is an absolute count (manual recount),
    not a delta. Existing repair parts keep their snapshotted unit price.
    """
    piece = get_piece(stock_piece_id, user_id=user_id)
    clean = _validate_fields({k: v for k, v in patch.items() if k in STOCK_MUTABLE_FIELDS}, creating=False)
    for key, value in clean.items():
        setattr(piece, key, value)
    db.session.commit()
    return piece


def delete_piece(stock_piece_id: int, *, user_id: int) -> None:
    piece = get_piece(stock_piece_id, user_id=user_id)
    in_use = db.session.query(RepairPart).filter_by(stock_piece_id=piece.id).count()
    if in_use:
        raise ValidationError(
            "This piece is used by repairs; release it from those repairs first",
            repair_parts=in_use,
        )
    db.session.delete(piece)
    db.session.commit()
