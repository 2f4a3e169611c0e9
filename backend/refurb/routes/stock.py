# Overview: Flask API routes for spare-part stock; parses input and returns JSON responses.

# backend/refurb/routes/stock.py
from flask import Blueprint, request, g

from ..services import stock_service
from ..services.errors import ServiceError
from ..decorators import require_auth, error_response

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
def list_stock_route():
    return stock_service.list_pieces(user_id=g.user_id, search=request.args.get("search"))


@stock_bp.get("/available")
@require_auth
def available_stock_route():
    """Pieces with quantity > 0, for the repair part picker."""
    return {"items": stock_service.list_available(user_id=g.user_id)}


@stock_bp.get("/summary")
@require_auth
def stock_summary_route():
    return stock_service.summary(user_id=g.user_id)


@stock_bp.get("/<int:stock_piece_id>")
@require_auth
def get_piece_route(stock_piece_id: int):
    try:
        piece = stock_service.get_piece(stock_piece_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return piece.to_dict()


@stock_bp.post("")
@require_auth
def create_piece_route():
    payload = request.get_json(silent=True) or {}
    try:
        piece = stock_service.create_piece(user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return piece.to_dict(), 201


@stock_bp.put("/<int:stock_piece_id>")
@require_auth
def update_piece_route(stock_piece_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        piece = stock_service.update_piece(stock_piece_id, user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return piece.to_dict()


@stock_bp.delete("/<int:stock_piece_id>")
@require_auth
def delete_piece_route(stock_piece_id: int):
    try:
        stock_service.delete_piece(stock_piece_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return {"ok": True}, 200
