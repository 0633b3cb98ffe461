# Overview: Operation processor; RECEIVING and SALE transactions against role-resolved item columns.

"""
Operation Processor

Each create_* call is ONE transaction:
1. Validate the request shape (before touching the database).
2. Resolve the schema roles and lock the referenced items.
3. Check every business rule (stock, prices, discounts, client totals)
   before the first mutation.
4. Write new item data + the immutable Operation record, then commit.
5. Notify listeners after the commit.

Optimistic-lock conflicts re-run steps 2-4 from scratch (run_with_retry), so
a concurrent sale that drained the stock is re-validated, not blindly applied.

RETURN operations live in return_service.py; undo in undo_service.py.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import (
    DataIntegrityError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import BusinessSettings, Operation
from ..models.operations import OPERATION_RECEIVING, OPERATION_SALE, OPERATION_TYPES
from ..time_utils import parse_operation_date
from ..validation import (
    CARD_TYPES,
    DISCOUNT_TYPES,
    PAYMENT_METHODS,
    STRING_LIMITS,
    is_number,
    normalize_string,
    optional_non_negative_number,
    require_choice,
    require_int_id,
    require_list,
    require_non_negative_number,
    require_positive_int,
)
from .concurrency import run_with_retry
from .cost_service import weighted_average_cost
from .item_service import require_items, write_item_data
from .notification_service import notify_many
from .pricing_service import price_line, total_lines, verify_client_totals
from .schema_service import resolve_schema


# =============================================================================
# INPUT PARSING
# =============================================================================

def _parse_lines(raw_lines, parse_one) -> list[dict]:
    require_list(raw_lines, "At least one item is required")
    parsed = []
    seen = set()
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index + 1}: must be an object")
        line = parse_one(raw, index)
        if line["itemId"] in seen:
            raise ValidationError(
                f"Item {index + 1}: item {line['itemId']} appears more than once; combine the quantities"
            )
        seen.add(line["itemId"])
        parsed.append(line)
    return parsed


def _parse_receiving_line(raw: dict, index: int) -> dict:
    return {
        "itemId": require_int_id(raw.get("itemId"), f"Item {index + 1}: itemId"),
        "quantity": require_positive_int(raw.get("quantity"), f"Item {index + 1}: quantity"),
        "costPerItem": optional_non_negative_number(raw.get("costPerItem"), f"Item {index + 1}: costPerItem"),
    }


def _parse_sale_line(raw: dict, index: int) -> dict:
    label = f"Item {index + 1}"
    discount = optional_non_negative_number(raw.get("discount"), f"{label}: discount")
    discount_type = raw.get("discountType")
    if discount_type is not None:
        require_choice(discount_type, DISCOUNT_TYPES, f'{label}: discount type must be either "percent" or "fixed"')
    if discount_type == "percent" and discount is not None and discount > 100:
        raise ValidationError(f"{label}: percentage discount cannot exceed 100%")
    return {
        "itemId": require_int_id(raw.get("itemId"), f"{label}: itemId"),
        "quantity": require_positive_int(raw.get("quantity"), f"{label}: quantity"),
        "discount": discount,
        "discountType": discount_type,
    }


def _parse_payment_entry(raw, label: str) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"{label}: must be an object")
    method = require_choice(
        raw.get("method"), PAYMENT_METHODS,
        f"{label}: valid payment method is required ({', '.join(PAYMENT_METHODS)})",
    )
    entry = {
        "method": method,
        "amount": require_non_negative_number(raw.get("amount"), f"{label}: amount"),
    }
    if method == "CARD":
        entry["cardType"] = require_choice(
            raw.get("cardType"), CARD_TYPES, f"{label}: card type is required when payment method is CARD",
        )
    if method == "CHECK":
        check_number = normalize_string(raw.get("checkNumber"), f"{label}: check number", STRING_LIMITS["check_number"])
        if check_number:
            entry["checkNumber"] = check_number
    if method == "CASH" and raw.get("cashTendered") is not None:
        entry["cashTendered"] = require_non_negative_number(raw.get("cashTendered"), f"{label}: cashTendered")
    return entry


def parse_payment(payment: dict) -> dict:
    """
    Single payment (paymentMethod [+ cardType / checkNumber]) or split
    payments (payments: [{method, amount, ...}]). Returns Operation column values.
    """
    payment = payment or {}
    if isinstance(payment.get("payments"), list):
        entries = payment["payments"]
        if not entries:
            raise ValidationError("At least one payment is required")
        return {
            "payment_method": None,
            "card_type": None,
            "check_number": None,
            "payments": [_parse_payment_entry(raw, f"Payment {i + 1}") for i, raw in enumerate(entries)],
        }

    method = require_choice(
        payment.get("paymentMethod"), PAYMENT_METHODS,
        f"Valid payment method is required ({', '.join(PAYMENT_METHODS)})",
    )
    card_type = None
    if method == "CARD":
        card_type = require_choice(
            payment.get("cardType"), CARD_TYPES,
            f"Card type is required when payment method is CARD ({', '.join(CARD_TYPES)})",
        )
    check_number = None
    if method == "CHECK":
        check_number = normalize_string(payment.get("checkNumber"), "Check number", STRING_LIMITS["check_number"])
    return {"payment_method": method, "card_type": card_type, "check_number": check_number, "payments": None}


@dataclass(frozen=True)
class SubmittedTotals:
    subtotal: float
    total_discount: float
    tax_rate: float
    tax_name: str
    tax_amount: float
    grand_total: float
    cash_tendered: float | None = None
    change_given: float | None = None

    def as_submitted(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "totalDiscount": self.total_discount,
            "taxAmount": self.tax_amount,
            "grandTotal": self.grand_total,
        }


def parse_financials(financials: dict) -> SubmittedTotals:
    financials = financials or {}
    fields = ("subtotal", "totalDiscount", "taxRate", "taxAmount", "grandTotal")
    bad = [f for f in fields if not is_number(financials.get(f)) or financials.get(f) < 0]
    if bad:
        raise ValidationError(
            f"Invalid financial data: {', '.join(bad)} must be non-negative numbers",
            details={"fields": bad},
        )
    tax_name = normalize_string(financials.get("taxName"), "taxName", STRING_LIMITS["tax_name"]) or "Tax"
    return SubmittedTotals(
        subtotal=financials["subtotal"],
        total_discount=financials["totalDiscount"],
        tax_rate=financials["taxRate"],
        tax_name=tax_name,
        tax_amount=financials["taxAmount"],
        grand_total=financials["grandTotal"],
        cash_tendered=optional_non_negative_number(financials.get("cashTendered"), "cashTendered"),
        change_given=optional_non_negative_number(financials.get("changeGiven"), "changeGiven"),
    )


# =============================================================================
# RECEIVING
# =============================================================================

def create_receiving(
    *,
    business_id: int,
    user_id: int | None,
    lines,
    date,
    supplier: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> Operation:
    """
    Receive stock: newQty = previousQty + quantity for every line.

    When the schema has a cost column and the line carries costPerItem, the
    item's cost becomes the weighted average of old and received stock and
    the line records costPerItem / previousCost / newCost for undo.
    """
    operation_date = parse_operation_date(date)
    parsed = _parse_lines(lines, _parse_receiving_line)
    supplier = normalize_string(supplier, "Supplier", STRING_LIMITS["supplier"])
    reference = normalize_string(reference, "Reference", STRING_LIMITS["reference"])
    notes = normalize_string(notes, "Notes", STRING_LIMITS["notes"])

    def _op():
        schema = resolve_schema(business_id)
        qty_col = schema.require_column("quantity")
        cost_col = schema.column_id("cost")
        items = require_items(business_id, [line["itemId"] for line in parsed], lock=True)

        operation_lines = []
        for line in parsed:
            item = items[line["itemId"]]
            data = item.data or {}
            previous_qty = schema.read_number(data, "quantity")
            new_qty = previous_qty + line["quantity"]
            changes = {qty_col: new_qty}

            op_line = {
                "itemId": item.id,
                "itemName": schema.display_name(data),
                "quantity": line["quantity"],
                "previousQty": previous_qty,
                "newQty": new_qty,
            }

            if cost_col and line["costPerItem"] is not None:
                previous_cost = schema.read_number(data, "cost")
                new_cost = weighted_average_cost(previous_qty, previous_cost, line["quantity"], line["costPerItem"])
                changes[cost_col] = new_cost
                op_line.update({
                    "costPerItem": line["costPerItem"],
                    "previousCost": previous_cost,
                    "newCost": new_cost,
                })

            write_item_data(item, changes)
            operation_lines.append(op_line)

        operation = Operation(
            business_id=business_id,
            user_id=user_id,
            type=OPERATION_RECEIVING,
            date=operation_date,
            items=operation_lines,
            total_qty=sum(line["quantity"] for line in parsed),
            supplier=supplier,
            reference=reference,
            notes=notes,
        )
        db.session.add(operation)
        db.session.commit()
        return operation, [items[line["itemId"]] for line in parsed]

    operation, updated = run_with_retry(_op)
    _notify_operation(business_id, operation, updated)
    return operation


# =============================================================================
# SALE
# =============================================================================

def create_sale(
    *,
    business_id: int,
    user_id: int | None,
    lines,
    date,
    payment: dict,
    financials: dict,
    customer: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> Operation:
    """
    Sell stock: newQty = previousQty - quantity; cost is never touched.

    Rejects, before any mutation:
    - InsufficientStockError when on-hand < requested
    - DataIntegrityError when the item's price is negative
    - ValidationError when a fixed discount exceeds the line's gross
    - FinancialMismatchError when the client's subtotal / discount / tax /
      grand total differ from the server's by more than the tolerance

    The stored totals are the server's, cent-rounded.
    """
    operation_date = parse_operation_date(date)
    parsed = _parse_lines(lines, _parse_sale_line)
    payment_fields = parse_payment(payment)
    submitted = parse_financials(financials)
    customer = normalize_string(customer, "Customer", STRING_LIMITS["customer"])
    reference = normalize_string(reference, "Reference", STRING_LIMITS["reference"])
    notes = normalize_string(notes, "Notes", STRING_LIMITS["notes"])
    tolerance = current_app.config.get("LEDGER_MONEY_TOLERANCE", 0.01)

    def _op():
        schema = resolve_schema(business_id)
        qty_col = schema.require_column("quantity")
        schema.require_column("price")
        items = require_items(business_id, [line["itemId"] for line in parsed], lock=True)

        # Validate everything first; nothing is written until all lines pass.
        priced = []
        for line in parsed:
            item = items[line["itemId"]]
            data = item.data or {}
            name = schema.display_name(data)

            current_qty = schema.read_number(data, "quantity")
            if current_qty < line["quantity"]:
                raise InsufficientStockError(
                    f'Insufficient stock for "{name}". Available: {current_qty}, Requested: {line["quantity"]}',
                    details={
                        "item_id": item.id,
                        "item_name": name,
                        "available": current_qty,
                        "requested": line["quantity"],
                    },
                )

            price = schema.read_number(data, "price")
            if price < 0:
                raise DataIntegrityError(
                    f'Item "{name}" has an invalid negative price. '
                    "Please correct the item price before processing this sale.",
                    details={"item_id": item.id, "price": price},
                )

            pricing = price_line(price, line["quantity"], line["discount"], line["discountType"], name)
            priced.append((line, item, name, current_qty, price, pricing))

        computed = total_lines([p[5] for p in priced], submitted.tax_rate)
        verify_client_totals(submitted.as_submitted(), computed, tolerance)
        stored = total_lines([p[5].rounded() for p in priced], submitted.tax_rate).rounded()

        operation_lines = []
        for line, item, name, current_qty, price, pricing in priced:
            new_qty = current_qty - line["quantity"]
            write_item_data(item, {qty_col: new_qty})
            operation_lines.append({
                "itemId": item.id,
                "itemName": name,
                "quantity": line["quantity"],
                "previousQty": current_qty,
                "newQty": new_qty,
                "pricePerItem": price,
                "discount": line["discount"],
                "discountType": line["discountType"],
                "lineTotal": pricing.rounded().line_total,
            })

        settings = db.session.query(BusinessSettings).filter_by(business_id=business_id).first()

        operation = Operation(
            business_id=business_id,
            user_id=user_id,
            type=OPERATION_SALE,
            date=operation_date,
            items=operation_lines,
            total_qty=sum(line["quantity"] for line in parsed),
            customer=customer,
            reference=reference,
            notes=notes,
            subtotal=stored.subtotal,
            total_discount=stored.total_discount,
            tax_rate=stored.tax_rate,
            tax_name=submitted.tax_name,
            tax_amount=stored.tax_amount,
            grand_total=stored.grand_total,
            cash_tendered=submitted.cash_tendered,
            change_given=submitted.change_given,
            receipt_logo_url=settings.logo_url if settings else None,
            receipt_header=settings.receipt_header if settings else None,
            receipt_footer=settings.receipt_footer if settings else None,
            **payment_fields,
        )
        db.session.add(operation)
        db.session.commit()
        return operation, [p[1] for p in priced]

    operation, updated = run_with_retry(_op)
    _notify_operation(business_id, operation, updated)
    return operation


# =============================================================================
# QUERIES
# =============================================================================

def get_operation(business_id: int, operation_id: int) -> Operation:
    operation = db.session.query(Operation).filter_by(id=operation_id, business_id=business_id).first()
    if operation is None:
        raise NotFoundError("Operation not found", details={"operation_id": operation_id})
    return operation


def list_operations(
    business_id: int,
    *,
    page: int = 1,
    limit: int = 20,
    type: str | None = None,
) -> tuple[list[Operation], int]:
    """Newest first."""
    q = db.session.query(Operation).filter(Operation.business_id == business_id)
    if type:
        if type not in OPERATION_TYPES:
            raise ValidationError(f"type must be one of {', '.join(OPERATION_TYPES)}")
        q = q.filter(Operation.type == type)
    total = q.count()
    operations = (
        q.order_by(Operation.created_at.desc(), Operation.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return operations, total


def _notify_operation(business_id: int, operation: Operation, items) -> None:
    events = [("operationCreated", operation.to_dict())]
    events.extend(("itemUpdated", item.to_dict()) for item in items)
    notify_many(business_id, events)
