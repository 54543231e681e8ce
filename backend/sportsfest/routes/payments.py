# Overview: Flask API routes for payment recording; parses input and returns JSON responses.

# backend/sportsfest/routes/payments.py
"""
Payment API routes.

The payment provider (or the app's confirmation handler) calls
POST /api/payments/record once money is captured.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_bearer_secret
from ..services import payment_service
from ..services.errors import CommerceError
from ..validation import coerce_bool, optional_str, require_amount_cents, require_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/record")
@require_bearer_secret("PAYMENT_WEBHOOK_SECRET")
def record_payment_route():
    """
    Record a captured payment.

    Body: {orderId, amountCollected (cents), isDeposit, providerReference?}
    Returns the updated order status and balance.
    """
    try:
        data = request.get_json(silent=True) or {}
        order_id = require_int(data, "orderId", minimum=1)
        amount = require_amount_cents(data, "amountCollected")
        is_deposit = coerce_bool("isDeposit", data.get("isDeposit"), default=False)
        provider_reference = optional_str(data, "providerReference", max_length=255)

        order = payment_service.record_payment(
            order_id,
            amount,
            is_deposit,
            provider_reference=provider_reference,
        )
        return jsonify({
            "success": True,
            "orderId": order.id,
            "orderNumber": order.order_number,
            "status": order.status,
            "balanceOwed": order.balance_owed_cents,
            "amountCollected": order.amount_collected_cents,
        }), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/orders/<int:order_id>")
def payment_summary_route(order_id: int):
    try:
        return jsonify({"summary": payment_service.get_payment_summary(order_id)}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load payment summary")
        return jsonify({"error": "Internal server error"}), 500
