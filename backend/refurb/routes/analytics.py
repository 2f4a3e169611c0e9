from flask import Blueprint, jsonify, request, g, current_app

from refurb.decorators import require_auth
from refurb.extensions import db
from refurb.models import MaterielExpense, Phone, Repair, StockPiece
from refurb.services import analytics_service


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


def _load_dataset(user_id: int) -> analytics_service.AnalyticsDataset:
    """Every record the caller owns; the time window is applied in memory."""
    return analytics_service.AnalyticsDataset.from_rows(
        phones=db.session.query(Phone).filter(Phone.user_id == user_id).all(),
        repairs=db.session.query(Repair).filter(Repair.user_id == user_id).all(),
        stock_pieces=db.session.query(StockPiece).filter(StockPiece.user_id == user_id).all(),
        expenses=db.session.query(MaterielExpense).filter(MaterielExpense.user_id == user_id).all(),
    )


@analytics_bp.get("")
@require_auth
def analytics_report():
    time_range = request.args.get("range") or analytics_service.DEFAULT_TIME_RANGE
    if time_range not in analytics_service.TIME_RANGES:
        return jsonify({
            "error": f"range must be one of: {', '.join(analytics_service.TIME_RANGES)}",
            "code": "validation_error",
        }), 400

    try:
        report = analytics_service.build_report(_load_dataset(g.user_id), time_range)
    except analytics_service.AnalyticsError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to build analytics report")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(report.to_dict()), 200
