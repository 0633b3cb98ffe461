# Overview: Flask API routes for ledger operations (receiving, sales, returns) and their undo.

"""
Ledger Operation API Routes

DESIGN:
- Each POST runs one service call = one atomic transaction
- Errors come back as {"error": message, "details": {...}} with the error's
  status code; a 409 with "retryable" semantics means resubmit as-is

SECURITY:
- Receiving and undo require OWNER or BOSS
- Sales and returns are open to every member of the business
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.tenancy import MANAGER_ROLES
from ..services import operation_service, return_service, undo_service
from ..validation import get_pagination_params, pagination_response
from ..decorators import require_business, require_role


operations_bp = Blueprint("operations", __name__, url_prefix="/api/operations")


def _error(e: LedgerError):
    return jsonify(e.to_dict()), e.status_code


# =============================================================================
# QUERIES
# =============================================================================

@operations_bp.get("")
@require_business
def list_operations_route():
    """Query params: page, limit, type (RECEIVING | SALE | RETURN)."""
    try:
        page, limit = get_pagination_params(
            request.args,
            default_limit=current_app.config["LEDGER_PAGE_SIZE"],
            max_limit=current_app.config["LEDGER_MAX_PAGE_SIZE"],
        )
        operations, total = operation_service.list_operations(
            g.business_id, page=page, limit=limit, type=request.args.get("type") or None,
        )
        return jsonify({
            "operations": [op.to_dict() for op in operations],
            "pagination": pagination_response(page, limit, total),
        }), 200
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list operations")
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.get("/<int:operation_id>")
@require_business
def get_operation_route(operation_id: int):
    try:
        operation = operation_service.get_operation(g.business_id, operation_id)
        return jsonify({"operation": operation.to_dict()}), 200
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load operation")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATION
# =============================================================================

@operations_bp.post("/receiving")
@require_business
@require_role(*MANAGER_ROLES)
def create_receiving_route():
    """
    Request body:
    {
        "date": "2026-03-01",
        "items": [{"itemId": 1, "quantity": 5, "costPerItem": 2.5}],
        "supplier": "Acme",  (optional)
        "reference": "PO-12",  (optional)
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        operation = operation_service.create_receiving(
            business_id=g.business_id,
            user_id=g.current_user.id,
            lines=data.get("items"),
            date=data.get("date"),
            supplier=data.get("supplier"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"operation": operation.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create receiving")
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.post("/sale")
@require_business
def create_sale_route():
    """
    Request body:
    {
        "date": "2026-03-01T10:15:00Z",
        "items": [{"itemId": 1, "quantity": 3, "discount": 10, "discountType": "percent"}],
        "paymentMethod": "CARD", "cardType": "VISA",
            (or "payments": [{"method": "CASH", "amount": 10}, {"method": "CARD", "amount": 17, "cardType": "AMEX"}])
        "subtotal": 30, "totalDiscount": 3, "taxRate": 0, "taxName": "VAT",
        "taxAmount": 0, "grandTotal": 27,
        "cashTendered": 30, "changeGiven": 3,  (optional)
        "customer": "...", "reference": "...", "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        operation = operation_service.create_sale(
            business_id=g.business_id,
            user_id=g.current_user.id,
            lines=data.get("items"),
            date=data.get("date"),
            payment=data,
            financials=data,
            customer=data.get("customer"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"operation": operation.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.post("/return")
@require_business
def create_return_route():
    """
    Request body:
    {
        "originalSaleId": 12,
        "date": "2026-03-02",
        "items": [{"itemId": 1, "quantity": 1, "condition": "resellable", "reason": "wrong size"}],
        "refundMethod": "CARD", "cardType": "VISA",
        "returnReason": "Customer changed mind",
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        operation = return_service.create_return(
            business_id=g.business_id,
            user_id=g.current_user.id,
            original_sale_id=data.get("originalSaleId"),
            lines=data.get("items"),
            date=data.get("date"),
            refund_method=data.get("refundMethod"),
            card_type=data.get("cardType"),
            return_reason=data.get("returnReason"),
            notes=data.get("notes"),
        )
        return jsonify({"operation": operation.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS OF A SALE
# =============================================================================

@operations_bp.get("/<int:sale_id>/returnable-items")
@require_business
def returnable_items_route(sale_id: int):
    try:
        return jsonify(return_service.compute_returnable(g.business_id, sale_id)), 200
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to compute returnable items")
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.get("/<int:sale_id>/returns")
@require_business
def sale_returns_route(sale_id: int):
    try:
        returns, summary = return_service.list_sale_returns(g.business_id, sale_id)
        return jsonify({"returns": [r.to_dict() for r in returns], "summary": summary}), 200
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list sale returns")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# UNDO
# =============================================================================

@operations_bp.post("/<int:operation_id>/undo")
@require_business
@require_role(*MANAGER_ROLES)
def undo_operation_route(operation_id: int):
    try:
        operation = undo_service.undo_operation(g.business_id, operation_id, g.current_user.id)
        return jsonify({"operation": operation.to_dict()}), 200
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to undo operation")
        return jsonify({"error": "Internal server error"}), 500
