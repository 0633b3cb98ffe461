from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class InventorySchema(db.Model):
    """
    Per-business column definitions for the dynamic inventory record.

    columns is a JSON list of ColumnDefinition dicts:
        {id, name, type, role?, options?, required, order}
    Each role (name, quantity, minQuantity, price, cost) appears on at most
    one column; services/schema_service.py enforces that on write.
    """
    __tablename__ = "inventory_schemas"

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, unique=True)
    columns = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "businessId": self.business_id,
            "columns": self.columns or [],
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class InventoryItem(db.Model):
    """
    One inventory record. ``data`` is keyed by column id and is otherwise
    schema-less; only role-resolved columns take part in ledger arithmetic.

    CONCURRENCY: version_id is an optimistic-lock counter. Two writers that
    both read version N cannot both commit; the loser gets StaleDataError and
    is retried from validation by services/concurrency.run_with_retry.

    ``data`` must be reassigned (never mutated in place) for the change and
    the version bump to be flushed.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_business_created", "business_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    created_by = db.relationship("User")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "businessId": self.business_id,
            "data": dict(self.data or {}),
            "createdById": self.created_by_id,
            "createdBy": self.created_by.to_summary() if self.created_by else None,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
