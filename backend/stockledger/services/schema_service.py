# Overview: Schema resolver and schema management; maps column roles to column ids per business.

"""
Dynamic schema resolution.

Inventory items store their values in a JSON blob keyed by column id. The
business decides which column plays which role; the ledger never touches a
column by name, only through the role map resolved here once per operation.

Role invariant: each of name / quantity / minQuantity / price / cost is
assigned to at most one column of a business's schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import SchemaError, ValidationError
from ..extensions import db
from ..models import InventorySchema
from ..models.logs import LOG_SCHEMA_UPDATED
from ..validation import COLUMN_ROLES, COLUMN_TYPES, STRING_LIMITS, is_number
from .audit_service import diff_schema_changes, record_log
from .concurrency import run_with_retry
from .notification_service import notify


UNKNOWN_ITEM_NAME = "Unknown Item"


@dataclass(frozen=True)
class Schema:
    business_id: int
    columns: tuple = ()
    columns_by_role: dict = field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        return bool(self.columns)

    def column_id(self, role: str) -> str | None:
        return self.columns_by_role.get(role)

    def require_column(self, role: str) -> str:
        """Column id for role, or SchemaError naming the missing role."""
        if not self.is_configured:
            raise SchemaError("Please set up your inventory columns first")
        col_id = self.columns_by_role.get(role)
        if col_id is None:
            raise SchemaError(
                f'No {role} column defined in schema. Please add a column with the "{role}" role.',
                details={"role": role},
            )
        return col_id

    def column_name(self, column_id: str) -> str:
        for column in self.columns:
            if column.get("id") == column_id:
                return column.get("name") or column_id
        return column_id

    def read_number(self, data: dict, role: str, default: float = 0):
        """Numeric value of the role column in data; default when unset or non-numeric."""
        col_id = self.columns_by_role.get(role)
        if col_id is None:
            return default
        value = (data or {}).get(col_id)
        return value if is_number(value) else default

    def item_name(self, data: dict) -> str | None:
        col_id = self.columns_by_role.get("name")
        if col_id is None:
            return None
        value = (data or {}).get(col_id)
        return value if isinstance(value, str) else None

    def display_name(self, data: dict) -> str:
        return self.item_name(data) or UNKNOWN_ITEM_NAME


def build_schema(business_id: int, columns: list[dict] | None) -> Schema:
    columns = list(columns or [])
    by_role = {}
    for column in columns:
        role = column.get("role")
        if role:
            by_role.setdefault(role, column.get("id"))
    return Schema(business_id=business_id, columns=tuple(columns), columns_by_role=by_role)


def get_columns(business_id: int) -> list[dict]:
    """Schema provider: the business's column definitions ([] when none are set up)."""
    row = db.session.query(InventorySchema).filter_by(business_id=business_id).first()
    if row is None or not row.columns:
        return []
    return sorted(row.columns, key=lambda c: c.get("order", 0))


def resolve_schema(business_id: int) -> Schema:
    return build_schema(business_id, get_columns(business_id))


def get_schema(business_id: int) -> InventorySchema | None:
    return db.session.query(InventorySchema).filter_by(business_id=business_id).first()


# =============================================================================
# SCHEMA UPDATES
# =============================================================================

def _clean_column(raw, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"Column {index + 1}: must be an object")

    col_id = raw.get("id")
    if not isinstance(col_id, str) or not col_id.strip():
        raise ValidationError(f"Column {index + 1}: id is required")

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Column {index + 1}: name is required")
    if len(name.strip()) > STRING_LIMITS["column_name"]:
        raise ValidationError(
            f"Column {index + 1}: name must be at most {STRING_LIMITS['column_name']} characters"
        )

    col_type = raw.get("type")
    if col_type not in COLUMN_TYPES:
        raise ValidationError(f"Column \"{name}\": type must be one of {', '.join(COLUMN_TYPES)}")

    role = raw.get("role")
    if role is not None and role not in COLUMN_ROLES:
        raise ValidationError(f"Column \"{name}\": role must be one of {', '.join(COLUMN_ROLES)}")

    options = raw.get("options")
    if options is not None:
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValidationError(f"Column \"{name}\": options must be a list of strings")

    order = raw.get("order", index)
    if isinstance(order, bool) or not isinstance(order, int):
        raise ValidationError(f"Column \"{name}\": order must be an integer")

    column = {
        "id": col_id.strip(),
        "name": name.strip(),
        "type": col_type,
        "required": bool(raw.get("required", False)),
        "order": order,
    }
    if role:
        column["role"] = role
    if options is not None:
        column["options"] = list(options)
    return column


def validate_columns(columns) -> list[dict]:
    if not isinstance(columns, list):
        raise ValidationError("columns must be a list")

    cleaned = [_clean_column(raw, i) for i, raw in enumerate(columns)]

    ids = [c["id"] for c in cleaned]
    if len(set(ids)) != len(ids):
        raise ValidationError("Column ids must be unique")

    roles = [c["role"] for c in cleaned if c.get("role")]
    if len(set(roles)) != len(roles):
        raise ValidationError("Each role can only be assigned to one column")

    for column in cleaned:
        if column["type"] == "select" and not column.get("options"):
            raise ValidationError(f"Column \"{column['name']}\" is a select type but has no options")

    return cleaned


def update_schema(business_id: int, columns, actor_id: int | None) -> InventorySchema:
    """
    Replace the business's column definitions.

    A SCHEMA_UPDATED log (not undoable) records what was added, removed or
    modified; nothing is logged when the new columns equal the old ones.
    """
    cleaned = validate_columns(columns)

    def _op():
        row = db.session.query(InventorySchema).filter_by(business_id=business_id).first()
        old_columns = list(row.columns or []) if row else []

        if row is None:
            row = InventorySchema(business_id=business_id, columns=cleaned)
            db.session.add(row)
        else:
            row.columns = cleaned

        changes = diff_schema_changes(old_columns, cleaned)
        log = None
        if changes:
            log = record_log(
                business_id=business_id,
                user_id=actor_id,
                action=LOG_SCHEMA_UPDATED,
                schema_changes=changes,
            )

        db.session.commit()
        return row, log

    row, log = run_with_retry(_op)
    if log is not None:
        notify(business_id, "logCreated", log.to_dict())
    return row
