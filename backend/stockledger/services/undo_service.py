# Overview: Undo engine; reverses recorded operations (delta-based) and item logs (snapshot/diff-based).

"""
Undo Engine

Every undoable record moves Active -> Undone exactly once. The record kinds:

    Operation RECEIVING   subtract received qty (floored at 0), reverse WAC
    Operation SALE        add sold qty back, cost untouched
    Operation RETURN      not undoable (NotUndoableError)
    Log ITEM_DELETED      recreate the item from its snapshot, validated
                          against the CURRENT schema (SchemaDriftError)
    Log ITEM_UPDATED      put each changed field back to oldValue, other
                          fields untouched
    Log ITEM_CREATED /    not undoable
        SCHEMA_UPDATED

Each kind is an UndoableRecord subclass with one apply_reverse(); undo()
resolves the class by record type and runs reverse + stamp + commit as a
single transaction. Operation deltas apply to the item's CURRENT values so
unrelated edits made since the operation survive the undo.

The undone_at stamp is version-guarded: of two concurrent undos of the same
record one commits, the other is retried, re-reads the stamp and fails with
AlreadyUndoneError.
"""

from __future__ import annotations

from flask import current_app

from ..errors import (
    AlreadyUndoneError,
    NotFoundError,
    NotUndoableError,
    SchemaDriftError,
    ValidationError,
)
from ..extensions import db
from ..models import InventoryItem, InventoryLog, Operation
from ..models.logs import LOG_ITEM_DELETED, LOG_ITEM_UPDATED
from ..models.operations import OPERATION_RECEIVING, OPERATION_RETURN, OPERATION_SALE
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import validate_inventory_data
from .concurrency import lock_for_update, run_with_retry
from .cost_service import reverse_weighted_average_cost
from .item_service import find_by_ids, get_item, write_item_data
from .notification_service import notify_many
from .schema_service import Schema, resolve_schema


class UndoableRecord:
    """One Operation or InventoryLog wrapped with its reverse procedure."""

    def __init__(self, record, schema: Schema):
        self.record = record
        self.schema = schema

    def apply_reverse(self) -> list[tuple[str, object]]:
        """Mutate items back; return the item notifications to emit after commit."""
        raise NotImplementedError

    def stamp(self, actor_id: int | None) -> None:
        self.record.undone_at = utcnow()
        self.record.undone_by_id = actor_id


# =============================================================================
# OPERATIONS (delta-based)
# =============================================================================

class _OperationUndo(UndoableRecord):

    def _live_items(self) -> dict[int, InventoryItem]:
        ids = [line.get("itemId") for line in self.record.items or []]
        items = find_by_ids(self.record.business_id, ids, lock=True)
        for item_id in ids:
            if item_id not in items:
                current_app.logger.info(
                    "Undo of operation %s skips item %s: it no longer exists", self.record.id, item_id
                )
        return items


class ReceivingUndo(_OperationUndo):

    def apply_reverse(self):
        qty_col = self.schema.require_column("quantity")
        cost_col = self.schema.column_id("cost")
        items = self._live_items()

        events = []
        for line in self.record.items or []:
            item = items.get(line.get("itemId"))
            if item is None:
                continue

            data = item.data or {}
            current_qty = self.schema.read_number(data, "quantity")
            received_qty = line.get("quantity") or 0
            changes = {qty_col: max(0, current_qty - received_qty)}

            if cost_col and line.get("costPerItem") is not None and line.get("previousCost") is not None:
                reversal = reverse_weighted_average_cost(
                    current_qty,
                    self.schema.read_number(data, "cost"),
                    received_qty,
                    line["costPerItem"],
                    line["previousCost"],
                )
                if reversal.used_fallback:
                    current_app.logger.warning(
                        "Cost reversal for item %s (operation %s) fell back to recorded previous cost %s",
                        item.id, self.record.id, line["previousCost"],
                    )
                changes[cost_col] = reversal.cost

            write_item_data(item, changes)
            events.append(("itemUpdated", item))
        return events


class SaleUndo(_OperationUndo):

    def apply_reverse(self):
        qty_col = self.schema.require_column("quantity")
        items = self._live_items()

        events = []
        for line in self.record.items or []:
            item = items.get(line.get("itemId"))
            if item is None:
                continue
            current_qty = self.schema.read_number(item.data, "quantity")
            write_item_data(item, {qty_col: current_qty + (line.get("quantity") or 0)})
            events.append(("itemUpdated", item))
        return events


OPERATION_UNDO = {
    OPERATION_RECEIVING: ReceivingUndo,
    OPERATION_SALE: SaleUndo,
}


# =============================================================================
# LOGS (snapshot / diff based)
# =============================================================================

class DeletedItemUndo(UndoableRecord):

    def apply_reverse(self):
        snapshot = self.record.snapshot
        if not snapshot or not isinstance(snapshot.get("data"), dict):
            raise ValidationError(
                "Cannot undo: no snapshot available", details={"log_id": self.record.id},
            )
        data = snapshot["data"]
        try:
            cleaned = validate_inventory_data(data, list(self.schema.columns))
        except ValidationError as exc:
            raise SchemaDriftError(
                "Cannot restore this item: the inventory columns have changed since it was deleted",
                details={"errors": exc.details.get("errors", [exc.message])},
            ) from exc

        item = InventoryItem(
            business_id=self.record.business_id,
            data=cleaned,
            created_by_id=snapshot.get("createdById"),
        )
        original_id = snapshot.get("id") or self.record.item_id
        if original_id and db.session.get(InventoryItem, original_id) is None:
            item.id = original_id
        created_at = snapshot.get("createdAt")
        if created_at:
            item.created_at = parse_iso_datetime(created_at)

        db.session.add(item)
        db.session.flush()
        return [("itemCreated", item)]


class UpdatedItemUndo(UndoableRecord):

    def apply_reverse(self):
        try:
            item = get_item(self.record.business_id, self.record.item_id, lock=True)
        except NotFoundError:
            raise NotFoundError(
                "Cannot undo this change: the item no longer exists",
                details={"item_id": self.record.item_id},
            )

        data = dict(item.data or {})
        for change in self.record.changes or []:
            if change.get("oldValue") is None:
                data.pop(change["field"], None)
            else:
                data[change["field"]] = change["oldValue"]
        item.data = data
        return [("itemUpdated", item)]


LOG_UNDO = {
    LOG_ITEM_DELETED: DeletedItemUndo,
    LOG_ITEM_UPDATED: UpdatedItemUndo,
}


def undoable_for(record, schema: Schema) -> UndoableRecord:
    """
    Pick the reverse procedure for a record.

    AlreadyUndoneError wins over NotUndoableError so a repeated request always
    reports the terminal state.
    """
    if record.is_undone:
        raise AlreadyUndoneError("This record has already been undone")

    if isinstance(record, Operation):
        if record.type == OPERATION_RETURN:
            raise NotUndoableError("Return operations cannot be undone")
        undo_cls = OPERATION_UNDO.get(record.type)
    else:
        undo_cls = LOG_UNDO.get(record.action) if record.undoable else None

    if undo_cls is None:
        raise NotUndoableError("This record cannot be undone")
    return undo_cls(record, schema)


# =============================================================================
# ENTRY POINTS
# =============================================================================

def _undo(model, business_id: int, record_id: int, actor_id: int | None, not_found: str):
    def _op():
        q = db.session.query(model).filter_by(id=record_id, business_id=business_id)
        record = lock_for_update(q).first()
        if record is None:
            raise NotFoundError(not_found)

        undo = undoable_for(record, resolve_schema(business_id))
        events = undo.apply_reverse()
        undo.stamp(actor_id)
        db.session.commit()
        return record, events

    return run_with_retry(_op)


def undo_operation(business_id: int, operation_id: int, actor_id: int | None) -> Operation:
    operation, events = _undo(Operation, business_id, operation_id, actor_id, "Operation not found")
    notify_many(
        business_id,
        [("operationUndone", operation.to_dict())] + [(event, item.to_dict()) for event, item in events],
    )
    return operation


def undo_log(business_id: int, log_id: int, actor_id: int | None) -> InventoryLog:
    log, events = _undo(InventoryLog, business_id, log_id, actor_id, "Log entry not found")
    notify_many(
        business_id,
        [(event, item.to_dict()) for event, item in events] + [("logUndone", log.to_dict())],
    )
    return log


def check_log_conflicts(business_id: int, log_id: int) -> dict:
    """
    Preview an undo: for ITEM_UPDATED, the fields whose current value no
    longer matches the logged newValue (a later edit that undo would clobber).
    """
    log = db.session.query(InventoryLog).filter_by(id=log_id, business_id=business_id).first()
    if log is None:
        raise NotFoundError("Log entry not found")

    item = find_by_ids(business_id, [log.item_id]).get(log.item_id) if log.item_id else None
    conflicts = []
    if log.action == LOG_ITEM_UPDATED and item is not None:
        current = item.data or {}
        for change in log.changes or []:
            current_value = current.get(change["field"])
            if current_value != change.get("newValue"):
                conflicts.append({
                    "fieldId": change["field"],
                    "fieldName": change.get("fieldName"),
                    "currentValue": current_value,
                    "willBecomeValue": change.get("oldValue"),
                })

    return {
        "logId": log.id,
        "action": log.action,
        "undoable": log.undoable and not log.is_undone,
        "itemExists": item is not None,
        "hasConflicts": bool(conflicts),
        "conflicts": conflicts,
    }
