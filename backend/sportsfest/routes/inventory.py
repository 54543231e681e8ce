# Overview: Flask API routes for inventory availability; parses input and returns JSON responses.

# backend/sportsfest/routes/inventory.py

from flask import Blueprint, current_app, jsonify

from ..services import inventory_service
from ..services.errors import CommerceError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/products/<int:product_id>")
def product_inventory_route(product_id: int):
    """Capacity, reserved and available units (available is null when unbounded)."""
    try:
        return jsonify({"inventory": inventory_service.get_inventory_status(product_id)}), 200
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load inventory for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/integrity")
def product_integrity_route(product_id: int):
    try:
        return jsonify({"integrity": inventory_service.check_ledger_integrity(product_id)}), 200
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check ledger for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500
