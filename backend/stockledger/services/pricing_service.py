# Overview: Sale and refund arithmetic: line discounts, totals, tax and client-total verification.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import FinancialMismatchError, ValidationError

CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Nearest cent, half-up (str() first so 26.999999999999996 rounds to 27.00)."""
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class LinePricing:
    gross: float
    discount_amount: float
    line_total: float

    def rounded(self) -> "LinePricing":
        """Cent-rounded copy; line_total is derived from the rounded parts so lines always sum to the totals."""
        gross = round_money(self.gross)
        discount_amount = round_money(self.discount_amount)
        return LinePricing(
            gross=gross,
            discount_amount=discount_amount,
            line_total=round_money(max(0.0, gross - discount_amount)),
        )


@dataclass(frozen=True)
class Totals:
    subtotal: float
    total_discount: float
    tax_rate: float
    tax_amount: float
    grand_total: float

    @property
    def taxable(self) -> float:
        return max(0.0, self.subtotal - self.total_discount)

    def rounded(self) -> "Totals":
        subtotal = round_money(self.subtotal)
        total_discount = round_money(self.total_discount)
        tax_amount = round_money(self.tax_amount)
        return Totals(
            subtotal=subtotal,
            total_discount=total_discount,
            tax_rate=self.tax_rate,
            tax_amount=tax_amount,
            grand_total=round_money(max(0.0, subtotal - total_discount) + tax_amount),
        )


def price_line(
    price: float,
    quantity: int,
    discount: float | None = None,
    discount_type: str | None = None,
    item_name: str = "item",
) -> LinePricing:
    """
    gross = price * quantity; percent discounts take pct/100 of gross, fixed
    discounts are an absolute amount that may not exceed gross.
    """
    gross = price * quantity
    discount_amount = 0.0

    if discount and discount > 0:
        if discount_type == "percent":
            discount_amount = gross * (discount / 100)
        else:
            if discount > gross:
                raise ValidationError(
                    f"Fixed discount ({discount:.2f}) cannot exceed line total ({gross:.2f}) for \"{item_name}\"",
                    details={"discount": discount, "lineTotal": gross},
                )
            discount_amount = discount

    return LinePricing(gross=gross, discount_amount=discount_amount, line_total=max(0.0, gross - discount_amount))


def price_refund(original_line: dict, quantity: int) -> LinePricing:
    """
    Refund for ``quantity`` units of an original sale line, at what the
    customer actually paid: the sale's price and discount, never the current
    item price. Fixed discounts are spread evenly over the units sold.
    """
    price = original_line.get("pricePerItem") or 0
    gross = price * quantity
    discount = original_line.get("discount") or 0
    discount_amount = 0.0

    if discount > 0:
        if original_line.get("discountType") == "percent":
            discount_amount = gross * (discount / 100)
        else:
            original_qty = original_line.get("quantity") or 0
            if original_qty > 0:
                discount_amount = (discount / original_qty) * quantity

    return LinePricing(gross=gross, discount_amount=discount_amount, line_total=max(0.0, gross - discount_amount))


def total_lines(lines: list[LinePricing], tax_rate: float) -> Totals:
    subtotal = sum(line.gross for line in lines)
    total_discount = sum(line.discount_amount for line in lines)
    taxable = max(0.0, subtotal - total_discount)
    tax_amount = taxable * (tax_rate / 100)
    return Totals(
        subtotal=subtotal,
        total_discount=total_discount,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        grand_total=taxable + tax_amount,
    )


def verify_client_totals(submitted: dict, computed: Totals, tolerance: float = 0.01) -> None:
    """
    Reject a sale whose client-side totals disagree with the server's by more
    than ``tolerance``. A mismatch is a rounding bug or a tampered request.
    """
    checks = (
        ("subtotal", "Subtotal", computed.subtotal),
        ("totalDiscount", "Discount", computed.total_discount),
        ("taxAmount", "Tax", computed.tax_amount),
        ("grandTotal", "Grand total", computed.grand_total),
    )
    for key, label, expected in checks:
        value = submitted.get(key)
        if value is None:
            continue
        # A little slack on top of the tolerance so an exact one-cent drift passes
        if abs(value - expected) > tolerance + 1e-9:
            raise FinancialMismatchError(
                f"{label} mismatch: expected {expected:.2f}, got {value:.2f}",
                details={"field": key, "expected": round_money(expected), "submitted": value},
            )
