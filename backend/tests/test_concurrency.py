# Overview: Pytest coverage for optimistic-lock retry and concurrent writers.

import json

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockledger import create_app
from stockledger.errors import (
    AlreadyUndoneError,
    ConcurrentModificationError,
    InsufficientStockError,
    OverReturnError,
)
from stockledger.extensions import db
from stockledger.models import Business, InventoryItem, InventoryLog, Operation, User
from stockledger.models.logs import LOG_ITEM_UPDATED
from stockledger.models.operations import OPERATION_RETURN
from stockledger.services import (
    concurrency,
    item_service,
    operation_service,
    return_service,
    schema_service,
    undo_service,
)


class TestRunWithRetry:

    def test_retries_stale_data_then_succeeds(self, app):
        calls = []

        def op():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return "ok"

        assert concurrency.run_with_retry(op, backoff_base=0) == "ok"
        assert len(calls) == 2

    def test_gives_up_with_concurrent_modification(self, app):
        def op():
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        with pytest.raises(ConcurrentModificationError) as exc:
            concurrency.run_with_retry(op, attempts=2, backoff_base=0)
        assert exc.value.retryable is True
        assert exc.value.status_code == 409

    def test_other_errors_propagate_without_retry(self, app):
        calls = []

        def op():
            calls.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            concurrency.run_with_retry(op, backoff_base=0)
        assert len(calls) == 1


@pytest.fixture
def file_app(tmp_path):
    """App on a file database so a second connection can commit underneath a request."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _bump_item(item_id, **data):
    """Commit a competing write to the item from another connection."""
    with db.engine.begin() as conn:
        conn.execute(
            text("UPDATE inventory_items SET data = :data, version_id = version_id + 1 WHERE id = :id"),
            {"data": json.dumps(data), "id": item_id},
        )


class TestConcurrentSale:

    def test_competing_sale_is_revalidated_on_retry(self, file_app, monkeypatch):
        business = Business(name="Race Shop")
        user = User(name="Cashier")
        db.session.add_all([business, user])
        db.session.commit()
        schema_service.update_schema(business.id, [
            {"id": "n", "name": "Name", "type": "text", "role": "name"},
            {"id": "q", "name": "Qty", "type": "number", "role": "quantity"},
            {"id": "p", "name": "Price", "type": "currency", "role": "price"},
        ], user.id)
        item = InventoryItem(business_id=business.id, data={"n": "Last One", "q": 1, "p": 5.0})
        db.session.add(item)
        db.session.commit()
        item_id = item.id

        real_require_items = item_service.require_items
        calls = []

        def racing_require_items(business_id, item_ids, *, lock=False):
            items = real_require_items(business_id, item_ids, lock=lock)
            if not calls:
                # Another cashier sells the last unit after our read
                _bump_item(item_id, n="Last One", q=0, p=5.0)
            calls.append(1)
            return items

        monkeypatch.setattr(operation_service, "require_items", racing_require_items)

        with pytest.raises(InsufficientStockError):
            operation_service.create_sale(
                business_id=business.id,
                user_id=user.id,
                lines=[{"itemId": item_id, "quantity": 1}],
                date="2026-03-01",
                payment={"paymentMethod": "CASH"},
                financials={"subtotal": 5, "totalDiscount": 0, "taxRate": 0, "taxAmount": 0, "grandTotal": 5},
            )

        assert len(calls) == 2
        db.session.expire_all()
        assert db.session.get(InventoryItem, item_id).data["q"] == 0
        assert db.session.query(Operation).count() == 0


def _open_shop(**data):
    """Business, cashier and one item on the file database."""
    business = Business(name="Race Shop")
    user = User(name="Cashier")
    db.session.add_all([business, user])
    db.session.commit()
    schema_service.update_schema(business.id, [
        {"id": "n", "name": "Name", "type": "text", "role": "name"},
        {"id": "q", "name": "Qty", "type": "number", "role": "quantity"},
        {"id": "p", "name": "Price", "type": "currency", "role": "price"},
    ], user.id)
    item = InventoryItem(business_id=business.id, data=data)
    db.session.add(item)
    db.session.commit()
    return business, user, item.id


def _sell(business, user, item_id, quantity, price):
    amount = quantity * price
    return operation_service.create_sale(
        business_id=business.id,
        user_id=user.id,
        lines=[{"itemId": item_id, "quantity": quantity}],
        date="2026-03-01",
        payment={"paymentMethod": "CASH"},
        financials={"subtotal": amount, "totalDiscount": 0, "taxRate": 0, "taxAmount": 0, "grandTotal": amount},
    )


def _commit_return(business_id, sale_id, item_id, quantity):
    """Another register records a damaged return against the sale."""
    with db.engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO operations (business_id, type, date, items, total_qty, original_sale_id, version_id) "
                "VALUES (:business_id, 'RETURN', :date, :items, :qty, :sale_id, 1)"
            ),
            {
                "business_id": business_id,
                "date": "2026-03-02 00:00:00.000000",
                "items": json.dumps([{"itemId": item_id, "quantity": quantity, "condition": "damaged"}]),
                "qty": quantity,
                "sale_id": sale_id,
            },
        )
        conn.execute(
            text("UPDATE operations SET last_return_at = :now, version_id = version_id + 1 WHERE id = :id"),
            {"now": "2026-03-02 00:00:00.000000", "id": sale_id},
        )


def _stamp_undone(table, record_id):
    """Another manager's undo of the same record commits first."""
    with db.engine.begin() as conn:
        conn.execute(
            text(f"UPDATE {table} SET undone_at = :now, version_id = version_id + 1 WHERE id = :id"),
            {"now": "2026-03-02 00:00:00.000000", "id": record_id},
        )


class TestConcurrentReturn:

    def test_competing_return_is_revalidated_on_retry(self, file_app, monkeypatch):
        business, user, item_id = _open_shop(n="Mug", q=5, p=5.0)
        sale = _sell(business, user, item_id, 5, 5.0)
        sale_id = sale.id

        real_active_returns = return_service.active_returns
        calls = []

        def racing_active_returns(sale):
            returns = real_active_returns(sale)
            if not calls:
                _commit_return(business.id, sale_id, item_id, 4)
            calls.append(1)
            return returns

        monkeypatch.setattr(return_service, "active_returns", racing_active_returns)

        with pytest.raises(OverReturnError) as exc:
            return_service.create_return(
                business_id=business.id,
                user_id=user.id,
                original_sale_id=sale_id,
                lines=[{"itemId": item_id, "quantity": 4, "condition": "damaged"}],
                date="2026-03-02",
                refund_method="CASH",
                return_reason="Chipped",
            )

        assert len(calls) == 2
        assert exc.value.details["available"] == 1
        returns = db.session.query(Operation).filter_by(type=OPERATION_RETURN).all()
        assert sum(r.total_qty for r in returns) == 4

    def test_every_return_stamps_the_sale(self, file_app):
        business, user, item_id = _open_shop(n="Mug", q=5, p=5.0)
        sale = _sell(business, user, item_id, 5, 5.0)
        version = sale.version_id

        return_service.create_return(
            business_id=business.id,
            user_id=user.id,
            original_sale_id=sale.id,
            lines=[{"itemId": item_id, "quantity": 1, "condition": "defective"}],
            date="2026-03-02",
            refund_method="CASH",
            return_reason="Cracked",
        )

        db.session.expire_all()
        sale = db.session.get(Operation, sale.id)
        assert sale.last_return_at is not None
        assert sale.version_id == version + 1


class TestConcurrentUndo:

    def test_operation_undone_exactly_once(self, file_app, monkeypatch):
        business, user, item_id = _open_shop(n="Lamp", q=10, p=5.0)
        sale_id = _sell(business, user, item_id, 2, 5.0).id

        real_resolve_schema = undo_service.resolve_schema
        calls = []

        def racing_resolve_schema(business_id):
            if not calls:
                _bump_item(item_id, n="Lamp", q=10, p=5.0)
                _stamp_undone("operations", sale_id)
            calls.append(1)
            return real_resolve_schema(business_id)

        monkeypatch.setattr(undo_service, "resolve_schema", racing_resolve_schema)

        with pytest.raises(AlreadyUndoneError):
            undo_service.undo_operation(business.id, sale_id, user.id)

        assert len(calls) == 2
        db.session.expire_all()
        assert db.session.get(InventoryItem, item_id).data["q"] == 10
        assert db.session.get(Operation, sale_id).undone_by_id is None

    def test_log_undone_exactly_once(self, file_app, monkeypatch):
        business, user, item_id = _open_shop(n="Lamp", q=3, p=5.0)
        item_service.update_item(business.id, user.id, item_id, {"n": "Lamp", "q": 3, "p": 7.0})
        log_id = db.session.query(InventoryLog).filter_by(action=LOG_ITEM_UPDATED).one().id

        real_resolve_schema = undo_service.resolve_schema
        calls = []

        def racing_resolve_schema(business_id):
            if not calls:
                _bump_item(item_id, n="Lamp", q=3, p=5.0)
                _stamp_undone("inventory_logs", log_id)
            calls.append(1)
            return real_resolve_schema(business_id)

        monkeypatch.setattr(undo_service, "resolve_schema", racing_resolve_schema)
        db.session.expire_all()
        version = db.session.get(InventoryItem, item_id).version_id

        with pytest.raises(AlreadyUndoneError):
            undo_service.undo_log(business.id, log_id, user.id)

        assert len(calls) == 2
        db.session.expire_all()
        item = db.session.get(InventoryItem, item_id)
        assert item.data["p"] == 5.0
        assert item.version_id == version + 1
        assert db.session.get(InventoryLog, log_id).undone_by_id is None
