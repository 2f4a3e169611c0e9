# Overview: Flask API routes for phones operations; parses input and returns JSON responses.

# backend/refurb/routes/phones.py
"""
Phone inventory routes.

All phone operations are scoped to the caller (g.user_id, set by @require_auth).
A phone owned by someone else is reported as 404.
"""
from flask import Blueprint, request, g, current_app

from ..services import phone_service
from ..services.errors import ServiceError
from ..decorators import require_auth, error_response

phones_bp = Blueprint("phones", __name__, url_prefix="/api/phones")


@phones_bp.get("")
@require_auth
def list_phones_route():
    """
    List phones.

    Query params:
    - status: all | available | sold (default all)
    - search: matches model, IMEI or color
    - include_archived: 1 to include archived phones
    """
    try:
        return phone_service.list_phones(
            user_id=g.user_id,
            status=request.args.get("status", "all"),
            search=request.args.get("search"),
            include_archived=request.args.get("include_archived") in ("1", "true"),
        )
    except ServiceError as e:
        return error_response(e)


@phones_bp.get("/<int:phone_id>")
@require_auth
def get_phone_route(phone_id: int):
    try:
        phone = phone_service.get_phone(phone_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return phone.to_dict()


@phones_bp.post("")
@require_auth
def create_phone_route():
    payload = request.get_json(silent=True) or {}
    try:
        phone = phone_service.create_phone(user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create phone")
        return {"error": "Internal server error"}, 500
    return phone.to_dict(), 201


@phones_bp.put("/<int:phone_id>")
@require_auth
def update_phone_route(phone_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        phone = phone_service.update_phone(phone_id, user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return phone.to_dict()


@phones_bp.post("/<int:phone_id>/sell")
@require_auth
def sell_phone_route(phone_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        phone = phone_service.mark_sold(
            phone_id,
            user_id=g.user_id,
            sale_price=payload.get("sale_price"),
            sale_date=payload.get("sale_date"),
        )
    except ServiceError as e:
        return error_response(e)
    return phone.to_dict()


@phones_bp.post("/<int:phone_id>/unsell")
@require_auth
def unsell_phone_route(phone_id: int):
    try:
        phone = phone_service.mark_unsold(phone_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return phone.to_dict()


@phones_bp.post("/<int:phone_id>/archive")
@require_auth
def archive_phone_route(phone_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        phone = phone_service.archive_phone(
            phone_id, user_id=g.user_id, archived=bool(payload.get("archived", True))
        )
    except ServiceError as e:
        return error_response(e)
    return phone.to_dict()


@phones_bp.post("/<int:phone_id>/duplicate")
@require_auth
def duplicate_phone_route(phone_id: int):
    try:
        phone = phone_service.duplicate_phone(phone_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return phone.to_dict(), 201


@phones_bp.delete("/<int:phone_id>")
@require_auth
def delete_phone_route(phone_id: int):
    try:
        phone_service.delete_phone(phone_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return {"ok": True}, 200
