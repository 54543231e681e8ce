# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/sportsfest/routes/orders.py
"""Order API routes: checkout, manual orders, sponsorships, cancel, refund."""

from flask import Blueprint, current_app, jsonify, request

from ..services import order_service, sponsorship_service
from ..services.errors import CommerceError, ValidationError
from ..validation import optional_int, optional_str, require_amount_cents, require_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/checkout")
def checkout_route():
    """
    Convert the organization's cart into a pending order.

    Body: {organization_id, event_year_id, notes?}
    """
    try:
        data = request.get_json(silent=True) or {}
        organization_id = require_int(data, "organization_id", minimum=1)
        event_year_id = require_int(data, "event_year_id", minimum=1)
        notes = optional_str(data, "notes")

        order = order_service.create_order_from_cart(organization_id, event_year_id, notes=notes)
        return jsonify({"order": order.to_dict(include_items=True)}), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check out cart")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/")
def create_order_route():
    """
    Manual order without a cart.

    Body: {organization_id, event_year_id, lines: [{product_id, quantity, unit_price_cents?}], notes?}
    """
    try:
        data = request.get_json(silent=True) or {}
        organization_id = require_int(data, "organization_id", minimum=1)
        event_year_id = require_int(data, "event_year_id", minimum=1)
        lines = data.get("lines")
        if not isinstance(lines, list):
            raise ValidationError("lines must be a list")

        order = order_service.create_order(
            organization_id,
            event_year_id,
            lines,
            notes=optional_str(data, "notes"),
        )
        return jsonify({"order": order.to_dict(include_items=True)}), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/sponsorships")
def create_sponsorship_route():
    """
    Body: {organization_id, base_amount_cents, description?, event_year_id?}

    The invoice is emailed to organization admins right away; delivery
    failures are listed in failed_recipients.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sponsorship_service.create_sponsorship_order(
            require_int(data, "organization_id", minimum=1),
            require_amount_cents(data, "base_amount_cents"),
            description=optional_str(data, "description"),
            event_year_id=optional_int(data, "event_year_id", minimum=1),
        )
        return jsonify({
            "order": result["order"].to_dict(),
            "invoice": result["invoice"].to_dict(),
            "emails_sent": result["emails_sent"],
            "failed_recipients": result["failed_recipients"],
        }), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sponsorship")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/sponsorships/<int:order_id>")
def update_sponsorship_route(order_id: int):
    """
    Body: {base_amount_cents, description?}

    Only while nothing has been paid. The updated invoice is re-sent to
    organization admins.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sponsorship_service.update_sponsorship(
            order_id,
            require_amount_cents(data, "base_amount_cents"),
            description=optional_str(data, "description", max_length=500),
        )
        return jsonify({
            "order": result["order"].to_dict(),
            "invoice": result["invoice"].to_dict(),
            "emails_sent": result["emails_sent"],
            "failed_recipients": result["failed_recipients"],
        }), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sponsorship")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/sponsorships/<int:order_id>")
def delete_sponsorship_route(order_id: int):
    """Body: {reason?}. Deletes an unpaid sponsorship, cancels a partly paid one."""
    try:
        data = request.get_json(silent=True) or {}
        result = sponsorship_service.delete_sponsorship(
            order_id,
            reason=optional_str(data, "reason", max_length=255),
        )
        return jsonify({"success": True, **result}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sponsorship")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
def list_orders_route():
    """Query: organization_id (required), event_year_id (optional)."""
    try:
        organization_id = require_int(request.args, "organization_id", minimum=1)
        event_year_id = optional_int(request.args, "event_year_id", minimum=1)
        orders = order_service.list_orders(organization_id, event_year_id)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(order_id, reason=optional_str(data, "reason", max_length=255))
        return jsonify({"order": order.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/refund")
def refund_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.refund_order(order_id, reason=optional_str(data, "reason", max_length=255))
        return jsonify({"order": order.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
