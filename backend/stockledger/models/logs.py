from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LOG_ITEM_CREATED = "ITEM_CREATED"
LOG_ITEM_UPDATED = "ITEM_UPDATED"
LOG_ITEM_DELETED = "ITEM_DELETED"
LOG_SCHEMA_UPDATED = "SCHEMA_UPDATED"
LOG_ACTIONS = (LOG_ITEM_CREATED, LOG_ITEM_UPDATED, LOG_ITEM_DELETED, LOG_SCHEMA_UPDATED)

# Only these actions have a reverse procedure (services/undo_service.py)
UNDOABLE_LOG_ACTIONS = (LOG_ITEM_UPDATED, LOG_ITEM_DELETED)


class InventoryLog(db.Model):
    """
    Audit entry for a direct item mutation or a schema change.

    - ITEM_CREATED:   snapshot of the new item, not undoable
    - ITEM_UPDATED:   changes = [{field, fieldName, oldValue, newValue}], undoable
    - ITEM_DELETED:   snapshot of the removed item, undoable
    - SCHEMA_UPDATED: schema_changes = [{type, columnId, columnName, details?}], not undoable

    Same append-only contract as Operation: only undone_at / undone_by_id may
    change, exactly once.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_business_created", "business_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    action = db.Column(db.String(32), nullable=False, index=True)

    # Not a foreign key: the item may be deleted while its log lives on
    item_id = db.Column(db.Integer, nullable=True, index=True)
    item_name = db.Column(db.String(255), nullable=True)

    snapshot = db.Column(db.JSON, nullable=True)
    changes = db.Column(db.JSON, nullable=True)
    schema_changes = db.Column(db.JSON, nullable=True)

    undoable = db.Column(db.Boolean, nullable=False, default=False)
    undone_at = db.Column(db.DateTime(timezone=True), nullable=True)
    undone_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])
    undone_by = db.relationship("User", foreign_keys=[undone_by_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None

    def __repr__(self) -> str:
        return f"<InventoryLog id={self.id} action={self.action} item_id={self.item_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "itemId": self.item_id,
            "itemName": self.item_name,
            "snapshot": self.snapshot,
            "changes": self.changes,
            "schemaChanges": self.schema_changes,
            "undoable": self.undoable,
            "businessId": self.business_id,
            "userId": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "createdAt": to_utc_z(self.created_at),
            "undoneAt": to_utc_z(self.undone_at),
            "undoneById": self.undone_by_id,
            "undoneBy": self.undone_by.to_summary() if self.undone_by else None,
        }
