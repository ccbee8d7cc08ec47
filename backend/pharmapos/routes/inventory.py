# Overview: Flask API routes for batch stock; FEFO listings and allocation previews.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import batch_allocator
from ..services.code_resolver import get_product
from ..services.errors import CheckoutError
from ..decorators import require_context
from pharmapos.time_utils import today


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/products/<int:product_id>/batches")
@require_context
def list_batches_route(product_id: int):
    """Sellable batches at the branch in FEFO order, each with its expiry level."""
    try:
        ctx = g.checkout_context
        product = get_product(ctx, product_id)
        on_date = today()
        near_days = current_app.config.get("NEAR_EXPIRY_DAYS", 90)

        batches = []
        for batch in batch_allocator.fefo_batches(product.id, ctx):
            row = batch.to_dict()
            row["days_to_expiry"] = batch_allocator.days_to_expiry(batch.expiry_date, on_date)
            row["expiry_level"] = batch_allocator.expiry_level(batch.expiry_date, on_date, near_days)
            batches.append(row)

        return jsonify({
            "product_id": product.id,
            "quantity_available": batch_allocator.quantity_available(product.id, ctx),
            "batches": batches,
        }), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list batches")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products/<int:product_id>/allocation-preview")
@require_context
def allocation_preview_route(product_id: int):
    """FEFO plan for a quantity. Read-only; a short plan is reported, not rejected."""
    try:
        ctx = g.checkout_context
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        if quantity is None:
            return jsonify({"error": "quantity required"}), 400

        product = get_product(ctx, product_id)
        not_expired_on = today() if current_app.config.get("POS_BLOCK_EXPIRED_BATCHES") else None
        plan = batch_allocator.allocate(product.id, ctx, quantity, not_expired_on=not_expired_on)
        return jsonify({"plan": plan.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to preview allocation")
        return jsonify({"error": "Internal server error"}), 500
