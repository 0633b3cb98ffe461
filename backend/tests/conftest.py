"""
Pytest fixtures for stockledger backend tests.

Provides the in-memory test database, a business with members of every role,
a configured column schema and a couple of inventory items.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Business, BusinessSettings, User, BusinessMember, InventoryItem
from stockledger.models.tenancy import ROLE_OWNER, ROLE_BOSS, ROLE_EMPLOYEE
from stockledger.services import notification_service, schema_service


COLUMNS = [
    {"id": "c_name", "name": "Name", "type": "text", "role": "name", "required": True, "order": 0},
    {"id": "c_qty", "name": "Quantity", "type": "number", "role": "quantity", "required": False, "order": 1},
    {"id": "c_price", "name": "Price", "type": "currency", "role": "price", "required": False, "order": 2},
    {"id": "c_cost", "name": "Cost", "type": "currency", "role": "cost", "required": False, "order": 3},
    {"id": "c_min", "name": "Min Qty", "type": "number", "role": "minQuantity", "required": False, "order": 4},
    {"id": "c_color", "name": "Color", "type": "select", "options": ["red", "blue"], "required": False, "order": 5},
]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def events(app):
    """Collect (business_id, event, payload) notifications emitted during a test."""
    received = []

    def listener(business_id, event, payload):
        received.append((business_id, event, payload))

    notification_service.subscribe(listener, app)
    yield received
    notification_service.unsubscribe(listener, app)


@pytest.fixture(scope='function')
def business(db_session):
    business = Business(name="Corner Shop")
    business.settings = BusinessSettings(
        logo_url="https://example.test/logo.png",
        receipt_header="Corner Shop",
        receipt_footer="Thank you!",
    )
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def other_business(db_session):
    business = Business(name="Other Shop")
    db_session.add(business)
    db_session.commit()
    return business


def _member(db_session, business, name, role):
    user = User(name=name)
    db_session.add(user)
    db_session.flush()
    db_session.add(BusinessMember(business_id=business.id, user_id=user.id, role=role))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session, business):
    return _member(db_session, business, "Olivia Owner", ROLE_OWNER)


@pytest.fixture(scope='function')
def boss(db_session, business):
    return _member(db_session, business, "Bo Boss", ROLE_BOSS)


@pytest.fixture(scope='function')
def employee(db_session, business):
    return _member(db_session, business, "Eli Employee", ROLE_EMPLOYEE)


@pytest.fixture(scope='function')
def schema(business, owner):
    return schema_service.update_schema(business.id, COLUMNS, owner.id)


def make_item(business_id, **data):
    item = InventoryItem(business_id=business_id, data=data)
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture(scope='function')
def widget(schema, business):
    """10 widgets at cost 2.00, price 10.00."""
    return make_item(business.id, c_name="Widget", c_qty=10, c_price=10.0, c_cost=2.0)


@pytest.fixture(scope='function')
def gadget(schema, business):
    """5 gadgets at cost 4.00, price 25.00."""
    return make_item(business.id, c_name="Gadget", c_qty=5, c_price=25.0, c_cost=4.0)


def headers(user, business):
    return {"X-User-Id": str(user.id), "X-Business-Id": str(business.id)}


def reload(item):
    """Fresh copy of an item from the database."""
    db.session.expire_all()
    return db.session.get(InventoryItem, item.id)
