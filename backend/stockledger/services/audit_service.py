# Overview: Audit recorder for direct item edits and schema changes; append-only InventoryLog rows.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, InventoryLog
from ..models.logs import LOG_ACTIONS, UNDOABLE_LOG_ACTIONS
from ..time_utils import to_utc_z
"""
Audit Log Invariants (authoritative)

- Append-only: logs are never updated except for the one-time undo stamp,
  and never deleted outside a full tenant reset.
- Logs are written inside the same DB transaction as the mutation they record.
- ITEM_DELETED stores a full snapshot (what undo recreates from).
- ITEM_UPDATED stores only the per-column diff (undo reverts just those fields).
- Undoability is decided by action alone: ITEM_UPDATED and ITEM_DELETED.
"""


def record_log(
    *,
    business_id: int,
    action: str,
    user_id: int | None = None,
    item_id: int | None = None,
    item_name: str | None = None,
    snapshot: dict | None = None,
    changes: list[dict] | None = None,
    schema_changes: list[dict] | None = None,
) -> InventoryLog:
    """
    Append an audit entry in the caller's transaction.

    Does not commit; flushes so the id is available to the caller.
    """
    if action not in LOG_ACTIONS:
        raise ValueError(f"Unknown log action {action!r}")

    log = InventoryLog(
        business_id=business_id,
        user_id=user_id,
        action=action,
        item_id=item_id,
        item_name=item_name,
        snapshot=snapshot,
        changes=changes,
        schema_changes=schema_changes,
        undoable=action in UNDOABLE_LOG_ACTIONS,
    )
    db.session.add(log)
    db.session.flush()
    return log


def item_snapshot(item: InventoryItem) -> dict:
    """Point-in-time copy of an item, sufficient to recreate it."""
    return {
        "id": item.id,
        "data": dict(item.data or {}),
        "businessId": item.business_id,
        "createdById": item.created_by_id,
        "createdAt": to_utc_z(item.created_at),
        "updatedAt": to_utc_z(item.updated_at),
    }


def diff_changes(old_data: dict, new_data: dict, columns: list[dict]) -> list[dict]:
    """Per-column field changes between two data blobs (missing and None compare equal)."""
    changes = []
    for column in columns:
        col_id = column.get("id")
        old_value = (old_data or {}).get(col_id)
        new_value = (new_data or {}).get(col_id)
        if old_value != new_value:
            changes.append({
                "field": col_id,
                "fieldName": column.get("name"),
                "oldValue": old_value,
                "newValue": new_value,
            })
    return changes


def diff_schema_changes(old_columns: list[dict], new_columns: list[dict]) -> list[dict]:
    old_by_id = {c.get("id"): c for c in old_columns}
    new_by_id = {c.get("id"): c for c in new_columns}
    changes = []

    for column in new_columns:
        if column.get("id") not in old_by_id:
            changes.append({
                "type": "added",
                "columnId": column.get("id"),
                "columnName": column.get("name"),
                "details": f"Type: {column.get('type')}",
            })

    for column in old_columns:
        if column.get("id") not in new_by_id:
            changes.append({
                "type": "removed",
                "columnId": column.get("id"),
                "columnName": column.get("name"),
            })

    for column in new_columns:
        old = old_by_id.get(column.get("id"))
        if old is None:
            continue
        modifications = []
        if old.get("name") != column.get("name"):
            modifications.append(f'Name: "{old.get("name")}" -> "{column.get("name")}"')
        if old.get("type") != column.get("type"):
            modifications.append(f"Type: {old.get('type')} -> {column.get('type')}")
        if old.get("role") != column.get("role"):
            modifications.append(f"Role: {old.get('role') or 'none'} -> {column.get('role') or 'none'}")
        if bool(old.get("required")) != bool(column.get("required")):
            modifications.append(f"Required: {bool(old.get('required'))} -> {bool(column.get('required'))}")
        if old.get("order") != column.get("order"):
            modifications.append(f"Order: {old.get('order')} -> {column.get('order')}")
        if (old.get("options") or []) != (column.get("options") or []):
            modifications.append("Options changed")
        if modifications:
            changes.append({
                "type": "modified",
                "columnId": column.get("id"),
                "columnName": column.get("name"),
                "details": ", ".join(modifications),
            })

    return changes


# =============================================================================
# QUERIES
# =============================================================================

def get_log(business_id: int, log_id: int) -> InventoryLog:
    log = db.session.query(InventoryLog).filter_by(id=log_id, business_id=business_id).first()
    if log is None:
        raise NotFoundError("Log entry not found")
    return log


def list_logs(
    business_id: int,
    *,
    page: int = 1,
    limit: int = 20,
    action: str | None = None,
    item_id: int | None = None,
) -> tuple[list[InventoryLog], int]:
    """Newest first."""
    q = db.session.query(InventoryLog).filter(InventoryLog.business_id == business_id)
    if action:
        if action not in LOG_ACTIONS:
            raise ValidationError(f"action must be one of {', '.join(LOG_ACTIONS)}")
        q = q.filter(InventoryLog.action == action)
    if item_id is not None:
        q = q.filter(InventoryLog.item_id == item_id)

    total = q.count()
    logs = (
        q.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return logs, total
