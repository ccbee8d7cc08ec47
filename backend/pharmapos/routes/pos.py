# Overview: Flask API routes for the POS counter; code resolution, barcode binding and checkout.

# backend/pharmapos/routes/pos.py
"""
POS API routes

SECURITY: All routes require the tenant/branch context headers set by the
auth gateway (see decorators.require_context).

Errors from the checkout core carry their own HTTP status:
- 400 validation, 404 not found, 409 insufficient stock / duplicate barcode
- 503 concurrency conflict (retryable), 500 sequencing
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import checkout_service, code_resolver
from ..services.errors import CheckoutError
from ..decorators import require_context


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.get("/resolve/<path:code>")
@require_context
def resolve_code_route(code: str):
    """Resolve a scanned code. 404 carries the reason and any candidates."""
    try:
        outcome = code_resolver.resolve(code, g.checkout_context)
        if not outcome.found:
            return jsonify(outcome.to_dict()), 404
        return jsonify(outcome.to_dict()), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to resolve code")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/barcodes")
@require_context
def bind_barcode_route():
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        value = data.get("value")
        scheme = data.get("scheme")

        if not all([product_id, value, scheme]):
            return jsonify({"error": "product_id, value, and scheme required"}), 400

        barcode = code_resolver.bind_barcode(g.checkout_context, product_id, value, scheme)
        return jsonify({"barcode": barcode.to_dict()}), 201

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to bind barcode")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/barcodes/<int:barcode_id>/deactivate")
@require_context
def deactivate_barcode_route(barcode_id: int):
    try:
        barcode = code_resolver.deactivate_barcode(g.checkout_context, barcode_id)
        return jsonify({"barcode": barcode.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to deactivate barcode")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/barcodes/<int:barcode_id>/reactivate")
@require_context
def reactivate_barcode_route(barcode_id: int):
    try:
        barcode = code_resolver.reactivate_barcode(g.checkout_context, barcode_id)
        return jsonify({"barcode": barcode.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reactivate barcode")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/checkout/preview")
@require_context
def preview_checkout_route():
    """Price a cart without side effects."""
    try:
        checkout_request = checkout_service.parse_checkout_request(request.get_json(silent=True))
        result = checkout_service.preview_checkout(checkout_request, g.checkout_context)
        return jsonify({"checkout": result.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to preview checkout")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/checkout")
@require_context
def checkout_route():
    """
    Commit a cart: stock is drawn FEFO, GST computed, invoice numbered.

    Returns 201 with the invoice number and totals.
    """
    try:
        checkout_request = checkout_service.parse_checkout_request(request.get_json(silent=True))
        result = checkout_service.checkout(checkout_request, g.checkout_context)
        return jsonify({"checkout": result.to_dict()}), 201

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to complete checkout")
        return jsonify({"error": "Internal server error"}), 500
