# Overview: Flask API routes for the business's inventory column schema.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.tenancy import ROLE_OWNER
from ..services import schema_service
from ..decorators import require_business, require_role


schema_bp = Blueprint("schema", __name__, url_prefix="/api/schema")


@schema_bp.get("")
@require_business
def get_schema_route():
    """Current column definitions ([] until the owner sets them up)."""
    try:
        row = schema_service.get_schema(g.business_id)
        if row is None:
            return jsonify({"schema": None, "columns": []}), 200
        return jsonify({"schema": row.to_dict(), "columns": schema_service.get_columns(g.business_id)}), 200
    except Exception:
        current_app.logger.exception("Failed to load schema")
        return jsonify({"error": "Internal server error"}), 500


@schema_bp.put("")
@require_business
@require_role(ROLE_OWNER)
def update_schema_route():
    """
    Replace the column definitions.

    Request body:
    {
        "columns": [
            {"id": "c1", "name": "Name", "type": "text", "role": "name", "required": true, "order": 0},
            {"id": "c2", "name": "Qty", "type": "number", "role": "quantity", "order": 1}
        ]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        row = schema_service.update_schema(g.business_id, data.get("columns"), g.current_user.id)
        return jsonify({"schema": row.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update schema")
        return jsonify({"error": "Internal server error"}), 500
