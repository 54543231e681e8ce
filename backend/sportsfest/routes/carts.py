# Overview: Flask API routes for cart sessions; parses input and returns JSON responses.

# backend/sportsfest/routes/carts.py
"""Cart API routes. Callers are already authorized for the organization."""

from flask import Blueprint, current_app, jsonify, request

from ..services import cart_service
from ..services.errors import CommerceError
from ..validation import require_int


carts_bp = Blueprint("carts", __name__, url_prefix="/api/carts")


@carts_bp.get("/<int:organization_id>/<int:event_year_id>")
def get_cart_route(organization_id: int, event_year_id: int):
    try:
        summary = cart_service.get_cart_summary(organization_id, event_year_id)
        return jsonify(summary), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.put("/<int:organization_id>/<int:event_year_id>/items")
def set_item_route(organization_id: int, event_year_id: int):
    """
    Set a cart line to an absolute quantity (0 removes the line).

    Body: {product_id, quantity}
    409 with code sold_out / limit_reached when inventory or the
    per-organization cap does not allow it; the cart is left unchanged.
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = require_int(data, "product_id", minimum=1)
        quantity = require_int(data, "quantity", minimum=0)

        cart = cart_service.add_or_update_item(organization_id, event_year_id, product_id, quantity)
        return jsonify({"cart": cart.to_dict() if cart else None}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.delete("/<int:organization_id>/<int:event_year_id>/items/<int:product_id>")
def remove_item_route(organization_id: int, event_year_id: int, product_id: int):
    try:
        cart = cart_service.remove_item(organization_id, event_year_id, product_id)
        return jsonify({"cart": cart.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.delete("/<int:organization_id>/<int:event_year_id>")
def clear_cart_route(organization_id: int, event_year_id: int):
    try:
        released = cart_service.clear_cart(organization_id, event_year_id)
        return jsonify({"units_released": released}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500
