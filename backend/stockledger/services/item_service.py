# Overview: Item store accessor; business-scoped reads/writes of inventory items plus audited direct edits.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import InventoryItem, InventoryLog
from ..models.logs import LOG_ITEM_CREATED, LOG_ITEM_DELETED, LOG_ITEM_UPDATED
from ..validation import validate_inventory_data
from .audit_service import diff_changes, item_snapshot, record_log
from .concurrency import lock_for_update, run_with_retry
from .notification_service import notify_many
from .schema_service import resolve_schema
"""
Item Store Invariants

- Every read is scoped by business_id: an item of another business is
  reported exactly like a missing one.
- Item data is replaced wholesale (write_item_data), never mutated in place,
  so the JSON change and the optimistic version bump are flushed together.
- Direct edits (create/update/delete) write their audit log in the same
  transaction; ledger operations (operation_service, return_service,
  undo_service) record an Operation instead and do not log here.
"""


# =============================================================================
# STORE ACCESS (used by the ledger)
# =============================================================================

def find_by_ids(business_id: int, item_ids, *, lock: bool = False) -> dict[int, InventoryItem]:
    """Items of the business with the given ids, keyed by id. Unknown ids are simply absent."""
    ids = list({int(i) for i in item_ids})
    if not ids:
        return {}
    q = db.session.query(InventoryItem).filter(
        InventoryItem.business_id == business_id,
        InventoryItem.id.in_(ids),
    )
    if lock:
        q = lock_for_update(q)
    return {item.id: item for item in q.all()}


def require_items(business_id: int, item_ids, *, lock: bool = False) -> dict[int, InventoryItem]:
    items = find_by_ids(business_id, item_ids, lock=lock)
    for item_id in item_ids:
        if item_id not in items:
            raise NotFoundError(
                f"Item with ID {item_id} not found or does not belong to this business",
                details={"item_id": item_id},
            )
    return items


def get_item(business_id: int, item_id: int, *, lock: bool = False) -> InventoryItem:
    q = db.session.query(InventoryItem).filter_by(id=item_id, business_id=business_id)
    if lock:
        q = lock_for_update(q)
    item = q.first()
    if item is None:
        raise NotFoundError("Item not found", details={"item_id": item_id})
    return item


def write_item_data(item: InventoryItem, changes: dict) -> InventoryItem:
    """Merge changes into item.data as a new dict (JSON columns only track reassignment)."""
    data = dict(item.data or {})
    data.update(changes)
    item.data = data
    return item


def list_items(business_id: int, *, page: int = 1, limit: int = 20) -> tuple[list[InventoryItem], int]:
    q = db.session.query(InventoryItem).filter(InventoryItem.business_id == business_id)
    total = q.count()
    items = (
        q.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


# =============================================================================
# DIRECT EDITS (audited)
# =============================================================================

def create_item(business_id: int, actor_id: int | None, data, *, coerce: bool = False) -> InventoryItem:
    """
    Create an item; logs ITEM_CREATED (not undoable, delete the item instead).

    coerce=True normalises string input such as "$1,250.50" or "12" first.
    """
    schema = resolve_schema(business_id)
    cleaned = validate_inventory_data(data, list(schema.columns), coerce=coerce)

    def _op():
        item = InventoryItem(business_id=business_id, data=cleaned, created_by_id=actor_id)
        db.session.add(item)
        db.session.flush()

        log = record_log(
            business_id=business_id,
            user_id=actor_id,
            action=LOG_ITEM_CREATED,
            item_id=item.id,
            item_name=schema.item_name(cleaned),
            snapshot=item_snapshot(item),
        )
        db.session.commit()
        return item, log

    item, log = run_with_retry(_op)
    notify_many(business_id, [("itemCreated", item.to_dict()), ("logCreated", log.to_dict())])
    return item


def update_item(business_id: int, actor_id: int | None, item_id: int, data, *, coerce: bool = False) -> InventoryItem:
    """
    Replace an item's data. Logs ITEM_UPDATED with the per-column diff only
    when at least one column changed.
    """
    schema = resolve_schema(business_id)
    cleaned = validate_inventory_data(data, list(schema.columns), coerce=coerce)

    def _op():
        item = get_item(business_id, item_id, lock=True)
        old_data = dict(item.data or {})
        item.data = dict(cleaned)

        changes = diff_changes(old_data, cleaned, list(schema.columns))
        log = None
        if changes:
            log = record_log(
                business_id=business_id,
                user_id=actor_id,
                action=LOG_ITEM_UPDATED,
                item_id=item.id,
                item_name=schema.item_name(cleaned),
                changes=changes,
            )
        db.session.commit()
        return item, log

    item, log = run_with_retry(_op)
    events = [("itemUpdated", item.to_dict())]
    if log is not None:
        events.append(("logCreated", log.to_dict()))
    notify_many(business_id, events)
    return item


def delete_item(business_id: int, actor_id: int | None, item_id: int) -> InventoryLog:
    """Delete an item, keeping a full snapshot in an undoable ITEM_DELETED log."""
    schema = resolve_schema(business_id)

    def _op():
        item = get_item(business_id, item_id, lock=True)
        log = record_log(
            business_id=business_id,
            user_id=actor_id,
            action=LOG_ITEM_DELETED,
            item_id=item.id,
            item_name=schema.item_name(item.data or {}),
            snapshot=item_snapshot(item),
        )
        db.session.delete(item)
        db.session.commit()
        return log

    log = run_with_retry(_op)
    notify_many(business_id, [("itemDeleted", {"id": item_id}), ("logCreated", log.to_dict())])
    return log
