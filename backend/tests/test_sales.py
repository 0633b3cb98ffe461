# Overview: Pytest coverage for SALE operations: stock checks, discounts, totals, payments and branding.

import pytest
from conftest import make_item, reload
from stockledger.errors import (
    DataIntegrityError,
    FinancialMismatchError,
    InsufficientStockError,
    NotFoundError,
    SchemaError,
    ValidationError,
)
from stockledger.models import Operation
from stockledger.models.operations import OPERATION_SALE
from stockledger.services import operation_service, schema_service


def sell(business, user, lines, financials, payment=None, **meta):
    return operation_service.create_sale(
        business_id=business.id,
        user_id=user.id,
        lines=lines,
        date="2026-03-01T10:00:00Z",
        payment=payment or {"paymentMethod": "CASH"},
        financials=financials,
        **meta,
    )


def totals(subtotal, discount=0, tax_rate=0, tax=0, grand=None):
    return {
        "subtotal": subtotal,
        "totalDiscount": discount,
        "taxRate": tax_rate,
        "taxAmount": tax,
        "grandTotal": subtotal - discount + tax if grand is None else grand,
    }


class TestCreateSale:

    def test_percent_discount_example(self, business, employee, widget):
        operation = sell(
            business, employee,
            [{"itemId": widget.id, "quantity": 3, "discount": 10, "discountType": "percent"}],
            totals(30, 3),
        )

        assert operation.type == OPERATION_SALE
        line = operation.items[0]
        assert line["lineTotal"] == 27.0
        assert line["pricePerItem"] == 10.0
        assert (line["previousQty"], line["newQty"]) == (10, 7)
        assert operation.grand_total == 27.0
        assert reload(widget).data["c_qty"] == 7

    def test_cost_untouched(self, business, employee, widget):
        sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10))
        assert reload(widget).data["c_cost"] == 2.0

    def test_totals_with_tax(self, business, employee, widget, gadget):
        lines = [
            {"itemId": widget.id, "quantity": 2, "discount": 5, "discountType": "fixed"},
            {"itemId": gadget.id, "quantity": 1},
        ]
        # subtotal 45, discount 5, tax 8% of 40 = 3.20, grand 43.20
        operation = sell(business, employee, lines, dict(totals(45, 5, 8, 3.2), taxName="VAT"))

        assert operation.subtotal == 45.0
        assert operation.total_discount == 5.0
        assert operation.tax_amount == 3.2
        assert operation.grand_total == 43.2
        assert operation.tax_name == "VAT"
        assert sum(line["lineTotal"] for line in operation.items) == pytest.approx(
            operation.subtotal - operation.total_discount, abs=0.01
        )
        assert operation.grand_total == pytest.approx(
            (operation.subtotal - operation.total_discount) * (1 + operation.tax_rate / 100), abs=0.01
        )

    def test_default_tax_name(self, business, employee, widget):
        operation = sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10))
        assert operation.tax_name == "Tax"

    def test_branding_snapshot(self, business, employee, widget):
        operation = sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10))
        assert operation.receipt_logo_url == "https://example.test/logo.png"
        assert operation.receipt_header == "Corner Shop"
        assert operation.receipt_footer == "Thank you!"

    def test_card_payment(self, business, employee, widget):
        operation = sell(
            business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10),
            payment={"paymentMethod": "CARD", "cardType": "VISA"},
        )
        assert operation.payment_method == "CARD"
        assert operation.card_type == "VISA"

    def test_split_payments(self, business, employee, widget):
        payment = {"payments": [
            {"method": "CASH", "amount": 5, "cashTendered": 10},
            {"method": "CARD", "amount": 5, "cardType": "AMEX"},
        ]}
        operation = sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10), payment=payment)
        assert operation.payment_method is None
        assert operation.payments[1] == {"method": "CARD", "amount": 5, "cardType": "AMEX"}

    def test_cash_tendered_and_change(self, business, employee, widget):
        financials = dict(totals(10), cashTendered=20, changeGiven=10)
        operation = sell(business, employee, [{"itemId": widget.id, "quantity": 1}], financials)
        assert operation.cash_tendered == 20
        assert operation.change_given == 10


class TestSaleFailures:

    def test_insufficient_stock_names_item(self, business, employee, widget):
        with pytest.raises(InsufficientStockError) as exc:
            sell(business, employee, [{"itemId": widget.id, "quantity": 11}], totals(110))
        assert 'Insufficient stock for "Widget"' in exc.value.message
        assert exc.value.details["available"] == 10
        assert exc.value.details["requested"] == 11

    def test_selling_out_then_again_fails(self, business, employee, widget):
        sell(business, employee, [{"itemId": widget.id, "quantity": 10}], totals(100))
        assert reload(widget).data["c_qty"] == 0
        with pytest.raises(InsufficientStockError):
            sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10))

    def test_failure_on_later_line_writes_nothing(self, business, employee, widget, gadget):
        with pytest.raises(InsufficientStockError):
            sell(business, employee, [
                {"itemId": widget.id, "quantity": 1},
                {"itemId": gadget.id, "quantity": 6},
            ], totals(160))
        assert reload(widget).data["c_qty"] == 10
        assert Operation.query.count() == 0

    def test_negative_price(self, business, employee, schema):
        item = make_item(business.id, c_name="Broken", c_qty=3, c_price=-1.0)
        with pytest.raises(DataIntegrityError, match="negative price"):
            sell(business, employee, [{"itemId": item.id, "quantity": 1}], totals(0))

    def test_fixed_discount_above_gross(self, business, employee, widget):
        with pytest.raises(ValidationError, match="cannot exceed line total"):
            sell(
                business, employee,
                [{"itemId": widget.id, "quantity": 1, "discount": 15, "discountType": "fixed"}],
                totals(10, 15, grand=0),
            )

    def test_percent_above_hundred(self, business, employee, widget):
        with pytest.raises(ValidationError, match="cannot exceed 100%"):
            sell(
                business, employee,
                [{"itemId": widget.id, "quantity": 1, "discount": 150, "discountType": "percent"}],
                totals(10),
            )

    def test_tampered_grand_total(self, business, employee, widget):
        with pytest.raises(FinancialMismatchError) as exc:
            sell(business, employee, [{"itemId": widget.id, "quantity": 2}], totals(20, grand=2))
        assert exc.value.details["field"] == "grandTotal"
        assert reload(widget).data["c_qty"] == 10

    def test_missing_financials(self, business, employee, widget):
        with pytest.raises(ValidationError, match="Invalid financial data"):
            sell(business, employee, [{"itemId": widget.id, "quantity": 1}], {"subtotal": 10})

    def test_card_requires_card_type(self, business, employee, widget):
        with pytest.raises(ValidationError, match="Card type is required"):
            sell(
                business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10),
                payment={"paymentMethod": "CARD"},
            )

    def test_unknown_payment_method(self, business, employee, widget):
        with pytest.raises(ValidationError, match="payment method"):
            sell(
                business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10),
                payment={"paymentMethod": "BARTER"},
            )

    def test_no_price_column(self, db_session, business, owner, employee):
        from conftest import COLUMNS
        schema_service.update_schema(business.id, COLUMNS[:2], owner.id)
        item = make_item(business.id, c_name="Unpriced", c_qty=3)
        with pytest.raises(SchemaError, match="No price column"):
            sell(business, employee, [{"itemId": item.id, "quantity": 1}], totals(0))

    def test_unknown_item(self, business, employee, widget):
        with pytest.raises(NotFoundError):
            sell(business, employee, [{"itemId": 999999, "quantity": 1}], totals(10))


class TestOperationQueries:

    def test_list_newest_first_with_type_filter(self, business, boss, employee, widget):
        operation_service.create_receiving(
            business_id=business.id, user_id=boss.id,
            lines=[{"itemId": widget.id, "quantity": 1}], date="2026-03-01",
        )
        sale = sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10))

        operations, total = operation_service.list_operations(business.id)
        assert total == 2
        assert operations[0].id == sale.id

        sales, total = operation_service.list_operations(business.id, type=OPERATION_SALE)
        assert total == 1

        with pytest.raises(ValidationError):
            operation_service.list_operations(business.id, type="GIFT")

    def test_get_operation_scoped_to_business(self, business, other_business, employee, widget):
        sale = sell(business, employee, [{"itemId": widget.id, "quantity": 1}], totals(10))
        assert operation_service.get_operation(business.id, sale.id).id == sale.id
        with pytest.raises(NotFoundError):
            operation_service.get_operation(other_business.id, sale.id)
