# Overview: Flask API routes for direct inventory item edits; every change is audited.

"""
Inventory item routes.

- Any member may list and view items
- Creating, editing and deleting items requires OWNER or BOSS
- Create/update/delete each write an InventoryLog entry (see /api/log)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.tenancy import MANAGER_ROLES
from ..services import item_service
from ..validation import get_pagination_params, pagination_response
from ..decorators import require_business, require_role


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_business
def list_items_route():
    try:
        page, limit = get_pagination_params(
            request.args,
            default_limit=current_app.config["LEDGER_PAGE_SIZE"],
            max_limit=current_app.config["LEDGER_MAX_PAGE_SIZE"],
        )
        items, total = item_service.list_items(g.business_id, page=page, limit=limit)
        return jsonify({
            "items": [item.to_dict() for item in items],
            "pagination": pagination_response(page, limit, total),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:item_id>")
@require_business
def get_item_route(item_id: int):
    try:
        item = item_service.get_item(g.business_id, item_id)
        return jsonify({"item": item.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("")
@require_business
@require_role(*MANAGER_ROLES)
def create_item_route():
    """
    Request body: {"data": {"<columnId>": value, ...}, "coerce": false}

    coerce: true accepts form-style strings ("$4.50", "1,200") for numeric
    and date columns.
    """
    try:
        payload = request.get_json(silent=True) or {}
        item = item_service.create_item(
            g.business_id, g.current_user.id, payload.get("data"), coerce=payload.get("coerce") is True,
        )
        return jsonify({"item": item.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/<int:item_id>")
@require_business
@require_role(*MANAGER_ROLES)
def update_item_route(item_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        item = item_service.update_item(
            g.business_id, g.current_user.id, item_id, payload.get("data"), coerce=payload.get("coerce") is True,
        )
        return jsonify({"item": item.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:item_id>")
@require_business
@require_role(*MANAGER_ROLES)
def delete_item_route(item_id: int):
    try:
        log = item_service.delete_item(g.business_id, g.current_user.id, item_id)
        return jsonify({"deleted": item_id, "log": log.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete item")
        return jsonify({"error": "Internal server error"}), 500
