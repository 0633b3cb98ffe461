# Overview: Return linker and RETURN processing; partial returns against an original sale.

"""
Return Processing Service

WHY: A sale may be returned in several partial returns. The critical
challenge is never letting the returned quantity of a line exceed what was
sold, no matter how many returns were recorded or in what order.

DESIGN PRINCIPLES:
- Every RETURN references its original SALE (same business, not undone)
- returnable_lines() is the ONLY returnable-quantity computation; both the
  returnable-items view and create_return() call it
- Refunds are priced from the original sale line (what the customer paid),
  never from the item's current price
- Only resellable lines restock; damaged/defective lines are recorded only
- A line whose item was deleted since the sale is still refunded, just not
  restocked
- Undone returns no longer count against the sale
- Every return stamps the sale row, so two returns computed from the same
  view of the sale cannot both commit
"""

from __future__ import annotations

from ..errors import NotFoundError, OverReturnError, ValidationError
from ..extensions import db
from ..models import Operation
from ..models.operations import OPERATION_RETURN, OPERATION_SALE
from ..time_utils import parse_operation_date, utcnow
from ..validation import (
    CARD_TYPES,
    REFUND_METHODS,
    RETURN_CONDITIONS,
    STRING_LIMITS,
    normalize_string,
    require_choice,
    require_int_id,
    require_list,
    require_positive_int,
)
from .concurrency import lock_for_update, run_with_retry
from .item_service import find_by_ids, write_item_data
from .notification_service import notify_many
from .pricing_service import price_refund, total_lines
from .schema_service import resolve_schema


# =============================================================================
# RETURN LINKER
# =============================================================================

def _load_sale(business_id: int, sale_id: int, *, lock: bool = False, allow_undone: bool = False) -> Operation:
    q = db.session.query(Operation).filter_by(id=sale_id, business_id=business_id)
    if lock:
        q = lock_for_update(q)
    sale = q.first()
    if sale is None:
        raise NotFoundError("Original sale not found", details={"sale_id": sale_id})
    if sale.type != OPERATION_SALE:
        raise ValidationError("Returns can only be made against SALE operations", details={"operation_id": sale_id})
    if sale.is_undone and not allow_undone:
        raise ValidationError("Cannot return items from a sale that has been undone", details={"sale_id": sale_id})
    return sale


def active_returns(sale: Operation) -> list[Operation]:
    """Non-undone RETURN operations recorded against the sale."""
    return (
        db.session.query(Operation)
        .filter(
            Operation.business_id == sale.business_id,
            Operation.original_sale_id == sale.id,
            Operation.type == OPERATION_RETURN,
            Operation.undone_at.is_(None),
        )
        .all()
    )


def returnable_lines(sale: Operation, returns: list[Operation]) -> list[dict]:
    """
    Per original sale line: originalQty, returnedQty (summed over the given
    returns by itemId) and availableQty = originalQty - returnedQty.

    Pure: the caller decides which returns count (undone ones must be
    excluded). Lines are returned in sale order, including fully returned ones.
    """
    returned: dict[int, int] = {}
    for ret in returns:
        for line in ret.items or []:
            item_id = line.get("itemId")
            returned[item_id] = returned.get(item_id, 0) + (line.get("quantity") or 0)

    lines = []
    for line in sale.items or []:
        original_qty = line.get("quantity") or 0
        returned_qty = returned.get(line.get("itemId"), 0)
        lines.append({
            "itemId": line.get("itemId"),
            "itemName": line.get("itemName"),
            "originalQty": original_qty,
            "returnedQty": returned_qty,
            "availableQty": max(0, original_qty - returned_qty),
            "pricePerItem": line.get("pricePerItem"),
            "discount": line.get("discount"),
            "discountType": line.get("discountType"),
            "lineTotal": line.get("lineTotal"),
        })
    return lines


def compute_returnable(business_id: int, sale_id: int) -> dict:
    """What can still be returned from a sale; only lines with availableQty > 0 are listed."""
    sale = _load_sale(business_id, sale_id)
    lines = returnable_lines(sale, active_returns(sale))
    available = [line for line in lines if line["availableQty"] > 0]
    return {
        "saleId": sale.id,
        "saleDate": sale.to_dict()["date"],
        "saleReference": sale.reference,
        "customer": sale.customer,
        "taxRate": sale.tax_rate,
        "items": available,
        "isFullyReturned": not available,
    }


# =============================================================================
# RETURN CREATION
# =============================================================================

def _parse_return_lines(raw_lines) -> list[dict]:
    require_list(raw_lines, "At least one item is required")
    parsed = []
    seen = set()
    for index, raw in enumerate(raw_lines):
        label = f"Item {index + 1}"
        if not isinstance(raw, dict):
            raise ValidationError(f"{label}: must be an object")
        item_id = require_int_id(raw.get("itemId"), f"{label}: itemId")
        if item_id in seen:
            raise ValidationError(f"{label}: item {item_id} appears more than once; combine the quantities")
        seen.add(item_id)
        parsed.append({
            "itemId": item_id,
            "quantity": require_positive_int(raw.get("quantity"), f"{label}: quantity"),
            "condition": require_choice(
                raw.get("condition", "resellable"), RETURN_CONDITIONS,
                f"{label}: condition must be one of {', '.join(RETURN_CONDITIONS)}",
            ),
            "reason": normalize_string(raw.get("reason"), f"{label}: reason", STRING_LIMITS["notes"]),
        })
    return parsed


def create_return(
    *,
    business_id: int,
    user_id: int | None,
    original_sale_id,
    lines,
    date,
    refund_method: str,
    return_reason: str,
    card_type: str | None = None,
    notes: str | None = None,
) -> Operation:
    """
    Record a (partial) return against a sale.

    Raises OverReturnError when any line asks for more than the sale's
    availableQty for that item. Tax rate, tax name and branding are copied
    from the sale so the refund mirrors the original receipt.
    """
    sale_id = require_int_id(original_sale_id, "originalSaleId")
    operation_date = parse_operation_date(date)
    parsed = _parse_return_lines(lines)
    refund_method = require_choice(
        refund_method, REFUND_METHODS, f"Refund method must be one of {', '.join(REFUND_METHODS)}",
    )
    if refund_method == "CARD":
        card_type = require_choice(
            card_type, CARD_TYPES, "Card type is required when refund method is CARD",
        )
    else:
        card_type = None
    return_reason = normalize_string(return_reason, "Return reason", STRING_LIMITS["notes"])
    if not return_reason:
        raise ValidationError("Return reason is required")
    notes = normalize_string(notes, "Notes", STRING_LIMITS["notes"])

    def _op():
        # Row lock where the store has one. Stamping the sale below bumps its
        # version, so a return committed since this read fails the flush
        # and the retry re-checks against it.
        sale = _load_sale(business_id, sale_id, lock=True)
        available = {line["itemId"]: line for line in returnable_lines(sale, active_returns(sale))}
        sale_lines = {line.get("itemId"): line for line in sale.items or []}

        for line in parsed:
            returnable = available.get(line["itemId"])
            if returnable is None:
                raise ValidationError(
                    f"Item with ID {line['itemId']} was not part of the original sale",
                    details={"item_id": line["itemId"]},
                )
            if line["quantity"] > returnable["availableQty"]:
                raise OverReturnError(
                    f'Cannot return {line["quantity"]} of "{returnable["itemName"]}". '
                    f'Only {returnable["availableQty"]} remaining returnable',
                    details={
                        "item_id": line["itemId"],
                        "item_name": returnable["itemName"],
                        "available": returnable["availableQty"],
                        "requested": line["quantity"],
                    },
                )

        schema = resolve_schema(business_id)
        items = find_by_ids(business_id, [line["itemId"] for line in parsed], lock=True)
        restocking = any(line["condition"] == "resellable" and line["itemId"] in items for line in parsed)
        qty_col = schema.require_column("quantity") if restocking else None

        operation_lines = []
        refunds = []
        restocked_items = []
        for line in parsed:
            sale_line = sale_lines[line["itemId"]]
            refund = price_refund(sale_line, line["quantity"]).rounded()
            refunds.append(refund)

            item = items.get(line["itemId"])
            restock = item is not None and line["condition"] == "resellable"
            if item is None:
                # Deleted since the sale: refunded, nothing to restock
                previous_qty = new_qty = 0
            else:
                previous_qty = schema.read_number(item.data, "quantity")
                new_qty = previous_qty + line["quantity"] if restock else previous_qty
            if restock:
                write_item_data(item, {qty_col: new_qty})
                restocked_items.append(item)

            operation_lines.append({
                "itemId": line["itemId"],
                "itemName": sale_line.get("itemName"),
                "quantity": line["quantity"],
                "previousQty": previous_qty,
                "newQty": new_qty,
                "pricePerItem": sale_line.get("pricePerItem"),
                "discount": sale_line.get("discount"),
                "discountType": sale_line.get("discountType"),
                "lineTotal": refund.line_total,
                "condition": line["condition"],
                "reason": line["reason"],
                "refundAmount": refund.line_total,
                "restocked": restock,
            })

        totals = total_lines(refunds, sale.tax_rate or 0).rounded()

        operation = Operation(
            business_id=business_id,
            user_id=user_id,
            type=OPERATION_RETURN,
            date=operation_date,
            items=operation_lines,
            total_qty=sum(line["quantity"] for line in parsed),
            reference=sale.reference,
            customer=sale.customer,
            notes=notes,
            original_sale_id=sale.id,
            return_reason=return_reason,
            refund_method=refund_method,
            card_type=card_type,
            subtotal=totals.subtotal,
            total_discount=totals.total_discount,
            tax_rate=totals.tax_rate,
            tax_name=sale.tax_name,
            tax_amount=totals.tax_amount,
            grand_total=totals.grand_total,
            receipt_logo_url=sale.receipt_logo_url,
            receipt_header=sale.receipt_header,
            receipt_footer=sale.receipt_footer,
        )
        db.session.add(operation)
        sale.last_return_at = utcnow()
        db.session.commit()
        return operation, restocked_items

    operation, restocked = run_with_retry(_op)

    events = [("operationCreated", operation.to_dict())]
    events.extend(("itemUpdated", item.to_dict()) for item in restocked)
    notify_many(business_id, events)
    return operation


# =============================================================================
# QUERIES
# =============================================================================

def list_sale_returns(business_id: int, sale_id: int) -> tuple[list[Operation], dict]:
    """All returns linked to a sale (undone ones included, newest first) plus a summary."""
    sale = _load_sale(business_id, sale_id, allow_undone=True)
    returns = (
        db.session.query(Operation)
        .filter(
            Operation.business_id == business_id,
            Operation.original_sale_id == sale.id,
            Operation.type == OPERATION_RETURN,
        )
        .order_by(Operation.created_at.desc(), Operation.id.desc())
        .all()
    )
    active = [r for r in returns if not r.is_undone]
    summary = {
        "totalReturns": len(returns),
        "activeReturns": len(active),
        "undoneReturns": len(returns) - len(active),
        "returnedQty": sum(r.total_qty or 0 for r in active),
        "refundedTotal": round(sum(r.grand_total or 0 for r in active), 2),
    }
    return returns, summary
