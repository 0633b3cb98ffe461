from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


OPERATION_RECEIVING = "RECEIVING"
OPERATION_SALE = "SALE"
OPERATION_RETURN = "RETURN"
OPERATION_TYPES = (OPERATION_RECEIVING, OPERATION_SALE, OPERATION_RETURN)


class Operation(db.Model):
    """
    Immutable record of one stock-affecting business event.

    APPEND-ONLY: rows are never updated after creation except for the single
    undone_at / undone_by_id stamp and, on a SALE, the last_return_at stamp
    each RETURN writes. Never deleted outside a full tenant reset (cli.py
    ``ledger reset-business``).

    items is a JSON list of OperationLine dicts (camelCase keys):
      all types:  itemId, itemName, quantity, previousQty, newQty
      RECEIVING:  costPerItem?, previousCost?, newCost?
      SALE:       pricePerItem, discount?, discountType?, lineTotal
      RETURN:     SALE fields + condition, reason?, refundAmount, restocked

    version_id guards both stamps: two concurrent undos of the same
    operation cannot both commit, and neither can two returns checked against
    the same view of a sale (each bumps the sale's version).
    """
    __tablename__ = "operations"
    __table_args__ = (
        db.Index("ix_operations_business_created", "business_id", "created_at"),
        db.Index("ix_operations_business_type", "business_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    type = db.Column(db.String(16), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.Column(db.JSON, nullable=False, default=list)
    total_qty = db.Column(db.Integer, nullable=False, default=0)

    reference = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # RECEIVING
    supplier = db.Column(db.String(255), nullable=True)

    # SALE
    customer = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)
    card_type = db.Column(db.String(16), nullable=True)
    check_number = db.Column(db.String(50), nullable=True)
    payments = db.Column(db.JSON, nullable=True)
    cash_tendered = db.Column(db.Float, nullable=True)
    change_given = db.Column(db.Float, nullable=True)

    # SALE + RETURN financial totals
    subtotal = db.Column(db.Float, nullable=True)
    total_discount = db.Column(db.Float, nullable=True)
    tax_rate = db.Column(db.Float, nullable=True)
    tax_name = db.Column(db.String(50), nullable=True)
    tax_amount = db.Column(db.Float, nullable=True)
    grand_total = db.Column(db.Float, nullable=True)

    # Branding snapshot for receipt reproduction
    receipt_logo_url = db.Column(db.String(500), nullable=True)
    receipt_header = db.Column(db.Text, nullable=True)
    receipt_footer = db.Column(db.Text, nullable=True)

    # RETURN
    original_sale_id = db.Column(db.Integer, db.ForeignKey("operations.id"), nullable=True, index=True)
    return_reason = db.Column(db.Text, nullable=True)
    refund_method = db.Column(db.String(32), nullable=True)

    # SALE: touched by every RETURN against it
    last_return_at = db.Column(db.DateTime(timezone=True), nullable=True)

    undone_at = db.Column(db.DateTime(timezone=True), nullable=True)
    undone_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])
    undone_by = db.relationship("User", foreign_keys=[undone_by_id])
    original_sale = db.relationship(
        "Operation",
        remote_side=[id],
        backref=db.backref("returns", lazy="select", order_by="Operation.created_at.desc()"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None

    def __repr__(self) -> str:
        return f"<Operation id={self.id} type={self.type} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "date": to_utc_z(self.date),
            "items": list(self.items or []),
            "totalQty": self.total_qty,
            "reference": self.reference,
            "notes": self.notes,
            "supplier": self.supplier,
            "customer": self.customer,
            "paymentMethod": self.payment_method,
            "cardType": self.card_type,
            "checkNumber": self.check_number,
            "payments": self.payments,
            "cashTendered": self.cash_tendered,
            "changeGiven": self.change_given,
            "subtotal": self.subtotal,
            "totalDiscount": self.total_discount,
            "taxRate": self.tax_rate,
            "taxName": self.tax_name,
            "taxAmount": self.tax_amount,
            "grandTotal": self.grand_total,
            "receiptLogoUrl": self.receipt_logo_url,
            "receiptHeader": self.receipt_header,
            "receiptFooter": self.receipt_footer,
            "originalSaleId": self.original_sale_id,
            "returnReason": self.return_reason,
            "refundMethod": self.refund_method,
            "lastReturnAt": to_utc_z(self.last_return_at),
            "businessId": self.business_id,
            "userId": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "createdAt": to_utc_z(self.created_at),
            "undoneAt": to_utc_z(self.undone_at),
            "undoneById": self.undone_by_id,
            "undoneBy": self.undone_by.to_summary() if self.undone_by else None,
        }
