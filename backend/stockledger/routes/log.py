# Overview: Flask API routes for the inventory audit log and undo of direct item edits.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.tenancy import MANAGER_ROLES
from ..services import audit_service, undo_service
from ..validation import get_pagination_params, pagination_response, require_int_id
from ..decorators import require_business, require_role


log_bp = Blueprint("log", __name__, url_prefix="/api/log")


@log_bp.get("")
@require_business
def list_logs_route():
    """Query params: page, limit, action, itemId."""
    try:
        page, limit = get_pagination_params(
            request.args,
            default_limit=current_app.config["LEDGER_PAGE_SIZE"],
            max_limit=current_app.config["LEDGER_MAX_PAGE_SIZE"],
        )
        item_id = request.args.get("itemId")
        logs, total = audit_service.list_logs(
            g.business_id,
            page=page,
            limit=limit,
            action=request.args.get("action") or None,
            item_id=require_int_id(item_id, "itemId") if item_id else None,
        )
        return jsonify({
            "logs": [log.to_dict() for log in logs],
            "pagination": pagination_response(page, limit, total),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list logs")
        return jsonify({"error": "Internal server error"}), 500


@log_bp.get("/<int:log_id>")
@require_business
def get_log_route(log_id: int):
    try:
        log = audit_service.get_log(g.business_id, log_id)
        return jsonify({"log": log.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load log")
        return jsonify({"error": "Internal server error"}), 500


@log_bp.get("/<int:log_id>/check-conflicts")
@require_business
def check_conflicts_route(log_id: int):
    try:
        return jsonify(undo_service.check_log_conflicts(g.business_id, log_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check log conflicts")
        return jsonify({"error": "Internal server error"}), 500


@log_bp.post("/<int:log_id>/undo")
@require_business
@require_role(*MANAGER_ROLES)
def undo_log_route(log_id: int):
    try:
        log = undo_service.undo_log(g.business_id, log_id, g.current_user.id)
        return jsonify({"log": log.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to undo log entry")
        return jsonify({"error": "Internal server error"}), 500
