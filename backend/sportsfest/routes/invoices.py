# Overview: Flask API routes for order invoices; parses input and returns JSON responses.

# backend/sportsfest/routes/invoices.py
"""Invoice API routes: attach, send, resend, record payment."""

from flask import Blueprint, current_app, jsonify, request

from ..services import invoice_service
from ..services.errors import CommerceError, ReconciliationMismatchError
from ..validation import coerce_bool, optional_int, optional_str, require_amount_cents, require_int


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("/")
def attach_invoice_route():
    """Body: {order_id, total_amount_cents?, notes?}"""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.attach_invoice(
            require_int(data, "order_id", minimum=1),
            optional_int(data, "total_amount_cents", minimum=1),
            notes=optional_str(data, "notes"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to attach invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/mark-sent")
def mark_sent_route(invoice_id: int):
    """Body: {force?}. Stamps sent_at without sending email."""
    try:
        data = request.get_json(silent=True) or {}
        force = coerce_bool("force", data.get("force"), default=False)
        invoice = invoice_service.mark_sent(invoice_id, force=force)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark invoice sent")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/send")
def send_invoice_route(invoice_id: int):
    try:
        result = invoice_service.send_invoice(invoice_id)
        return jsonify({"success": result["emails_sent"] > 0, **result}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/resend")
def resend_invoice_route(invoice_id: int):
    try:
        result = invoice_service.resend_invoice(invoice_id)
        return jsonify({"success": result["emails_sent"] > 0, **result}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to resend invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/payments")
def record_invoice_payment_route(invoice_id: int):
    """Body: {amount_cents}"""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.record_invoice_payment(
            invoice_id,
            require_amount_cents(data, "amount_cents"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 200

    except ReconciliationMismatchError as e:
        current_app.logger.exception("Invoice %s failed reconciliation", invoice_id)
        return jsonify(e.to_dict()), e.status_code
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record invoice payment")
        return jsonify({"error": "Internal server error"}), 500
