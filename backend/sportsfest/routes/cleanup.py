# Overview: Flask API routes for scheduled cleanup jobs; parses input and returns JSON responses.

# backend/sportsfest/routes/cleanup.py
"""
Cron endpoints.

POST /api/cron/cleanup     expired-cart sweep (bearer CRON_SECRET)
GET  /api/cron/cleanup     cart health snapshot
POST /api/orders/cleanup   abandoned-order sweep (bearer CRON_SECRET)

Request/response bodies are camelCase for the scheduler that calls them.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_bearer_secret
from ..services import maintenance_service
from ..services.errors import CommerceError
from ..validation import coerce_bool, optional_int, optional_number


cleanup_bp = Blueprint("cleanup", __name__)


@cleanup_bp.post("/api/cron/cleanup")
@require_bearer_secret("CRON_SECRET")
def cron_cleanup_route():
    """Delete expired carts and release their inventory."""
    try:
        result = maintenance_service.cleanup_expired_carts()
        return jsonify({
            "success": True,
            "deletedCartCount": result["deleted_cart_count"],
            "totalUnitsReleased": result["total_units_released"],
            "affectedProductCount": result["affected_product_count"],
            "errors": result["errors"],
        }), 200

    except Exception:
        current_app.logger.exception("Expired-cart cleanup failed")
        return jsonify({"success": False, "error": "Cleanup failed"}), 500


@cleanup_bp.get("/api/cron/cleanup")
def cron_health_route():
    try:
        health = maintenance_service.get_cart_health()
        return jsonify({
            "status": "healthy",
            "activeCarts": health["active_carts"],
            "expiredCarts": health["expired_carts"],
        }), 200

    except Exception:
        current_app.logger.exception("Cart health check failed")
        return jsonify({"status": "unhealthy", "error": "Database error"}), 500


@cleanup_bp.post("/api/orders/cleanup")
@require_bearer_secret("CRON_SECRET")
def orders_cleanup_route():
    """
    Abandoned-order sweep.

    Body: {olderThanHours?, execute, eventYearId?, quick?}
    Dry run unless execute is true; quick forces the 1-hour threshold and
    overrides olderThanHours.
    """
    try:
        data = request.get_json(silent=True) or {}
        execute = coerce_bool("execute", data.get("execute"), default=False)
        quick = coerce_bool("quick", data.get("quick"), default=False)
        event_year_id = optional_int(data, "eventYearId", minimum=1)
        older_than_hours = optional_number(data, "olderThanHours")

        if quick:
            result = maintenance_service.quick_cleanup_abandoned_orders(
                execute=execute,
                event_year_id=event_year_id,
            )
        else:
            result = maintenance_service.cleanup_abandoned_orders(
                older_than_hours=older_than_hours,
                execute=execute,
                event_year_id=event_year_id,
            )

        return jsonify({
            "success": True,
            "foundOrders": result["found_orders"],
            "deletedOrders": result["deleted_orders"],
            "dryRun": result["dry_run"],
            "olderThanHours": result["older_than_hours"],
            "unitsReleased": result["units_released"],
        }), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Abandoned-order cleanup failed")
        return jsonify({"success": False, "error": "Cleanup failed"}), 500
