# Overview: Flask API routes for repairs and their consumed parts.

# backend/refurb/routes/repairs.py
"""
Repair routes, including the repair-parts ledger:

- POST   /api/repairs/<id>/parts          consume stock into the repair
- GET    /api/repairs/<id>/parts          current parts with line totals
- DELETE /api/repairs/<id>/parts/<part>   release a part back to stock

Ledger calls return a ServiceResult; failures keep their code
(insufficient_stock, conflict, ...) in the JSON body.
"""
from flask import Blueprint, request, g, current_app

from ..services import ledger_service, repair_service
from ..services.errors import NotFoundError, ServiceError, ServiceResult
from ..decorators import require_auth, error_response, result_response

repairs_bp = Blueprint("repairs", __name__, url_prefix="/api/repairs")


@repairs_bp.get("")
@require_auth
def list_repairs_route():
    """
    List repairs, active work first.

    Query params:
    - status: all | pending | in_progress | completed | failed
    - phone_id: int (optional)
    - include_archived: 1 to include archived repairs
    """
    try:
        return repair_service.list_repairs(
            user_id=g.user_id,
            status=request.args.get("status", "all"),
            phone_id=request.args.get("phone_id", type=int),
            include_archived=request.args.get("include_archived") in ("1", "true"),
        )
    except ServiceError as e:
        return error_response(e)


@repairs_bp.get("/<int:repair_id>")
@require_auth
def get_repair_route(repair_id: int):
    try:
        repair = repair_service.get_repair(repair_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return repair.to_dict()


@repairs_bp.post("")
@require_auth
def create_repair_route():
    payload = request.get_json(silent=True) or {}
    try:
        repair = repair_service.create_repair(user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create repair")
        return {"error": "Internal server error"}, 500
    return repair.to_dict(), 201


@repairs_bp.put("/<int:repair_id>")
@require_auth
def update_repair_route(repair_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        repair = repair_service.update_repair(repair_id, user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return repair.to_dict()


@repairs_bp.post("/<int:repair_id>/status")
@require_auth
def change_status_route(repair_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        repair = repair_service.change_status(repair_id, user_id=g.user_id, status=payload.get("status"))
    except ServiceError as e:
        return error_response(e)
    return repair.to_dict()


@repairs_bp.post("/<int:repair_id>/archive")
@require_auth
def archive_repair_route(repair_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        repair = repair_service.archive_repair(
            repair_id, user_id=g.user_id, archived=bool(payload.get("archived", True))
        )
    except ServiceError as e:
        return error_response(e)
    return repair.to_dict()


@repairs_bp.delete("/<int:repair_id>")
@require_auth
def delete_repair_route(repair_id: int):
    """Delete a repair. Its consumed parts go back to stock first."""
    try:
        released = repair_service.delete_repair(repair_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete repair")
        return {"error": "Internal server error"}, 500
    return {"ok": True, "released_parts": released}, 200


@repairs_bp.get("/<int:repair_id>/parts")
@require_auth
def list_parts_route(repair_id: int):
    return result_response(ledger_service.list_parts(repair_id, user_id=g.user_id))


@repairs_bp.post("/<int:repair_id>/parts")
@require_auth
def consume_part_route(repair_id: int):
    payload = request.get_json(silent=True) or {}
    stock_piece_id = payload.get("stock_piece_id")
    if not isinstance(stock_piece_id, int) or isinstance(stock_piece_id, bool):
        return {"error": "stock_piece_id must be an integer", "code": "validation_error"}, 400

    result = ledger_service.consume(
        repair_id,
        stock_piece_id,
        payload.get("quantity", 1),
        user_id=g.user_id,
    )
    return result_response(result, success_status=201)


@repairs_bp.delete("/<int:repair_id>/parts/<int:repair_part_id>")
@require_auth
def release_part_route(repair_id: int, repair_part_id: int):
    listing = ledger_service.list_parts(repair_id, user_id=g.user_id)
    if not listing.success:
        return result_response(listing)
    if repair_part_id not in {p["id"] for p in listing.data["parts"]}:
        return result_response(ServiceResult.fail(NotFoundError("Repair part not found")))
    return result_response(ledger_service.release(repair_part_id, user_id=g.user_id))
