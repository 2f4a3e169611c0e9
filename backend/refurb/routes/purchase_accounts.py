# Overview: Flask API routes for purchase accounts.

# backend/refurb/routes/purchase_accounts.py
from flask import Blueprint, request, g

from ..services import purchase_account_service
from ..services.errors import ServiceError
from ..decorators import require_auth, error_response

purchase_accounts_bp = Blueprint("purchase_accounts", __name__, url_prefix="/api/purchase-accounts")


@purchase_accounts_bp.get("")
@require_auth
def list_accounts_route():
    return {"items": purchase_account_service.list_accounts(user_id=g.user_id)}


@purchase_accounts_bp.post("")
@require_auth
def create_account_route():
    payload = request.get_json(silent=True) or {}
    try:
        account = purchase_account_service.create_account(user_id=g.user_id, patch=payload)
    except ServiceError as e:
        return error_response(e)
    return account.to_dict(), 201


@purchase_accounts_bp.delete("/<int:account_id>")
@require_auth
def delete_account_route(account_id: int):
    try:
        purchase_account_service.delete_account(account_id, user_id=g.user_id)
    except ServiceError as e:
        return error_response(e)
    return {"ok": True}, 200
