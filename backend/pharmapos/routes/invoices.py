# Overview: Flask API routes for issued invoices.

from flask import Blueprint, jsonify, current_app, g

from ..services.checkout_service import get_invoice
from ..services.invoice_sequencer import parse_invoice_number
from ..services.errors import CheckoutError
from ..decorators import require_context


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


# Invoice numbers contain slashes ("PP/25-26/0001"), hence the path converter
@invoices_bp.get("/<path:invoice_number>")
@require_context
def get_invoice_route(invoice_number: str):
    try:
        number = parse_invoice_number(invoice_number)
        invoice = get_invoice(str(number), g.checkout_context)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500
