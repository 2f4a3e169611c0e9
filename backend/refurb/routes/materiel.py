# Overview: Flask API routes for materiel expenses.

# backend/refurb/routes/materiel.py
from flask import Blueprint, request, g

from ..services import materiel_service
from ..services.errors import ServiceError
from ..decorators import require_auth, error_response

materiel_bp = Blueprint("materiel", __name__, url_prefix="/api/materiel")


@materiel_bp.get("")
@require_auth
def list_expenses_route():
    try:
        return materiel_service.list_expenses(user_id=g.user_id, category=request.args.get("category"))
    except ServiceError as e:
        return error_response(e)


@materiel_bp.get("/totals")
@require_auth
def totals_route():
    return {"items": materiel_service.totals_by_category(user_id=g.user_id)}


@materiel_bp.post("")
@require_auth
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    try:
        expense = materiel_service.create_expense(user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return expense.to_dict(), 201


@materiel_bp.put("/<int:expense_id>")
@require_auth
def update_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expense = materiel_service.update_expense(expense_id, user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return expense.to_dict()


@materiel_bp.delete("/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    try:
        materiel_service.delete_expense(expense_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return {"ok": True}, 200
