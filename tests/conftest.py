import pytest
from datetime import datetime, timedelta, timezone
import uuid

from config import Config
from kasir import create_app
from kasir import database
from kasir.database import Base, get_session
from kasir.exceptions import PaymentFailedError
from kasir.models import (
    Category, Product, ProductOption, PaymentMethod, CancellationReason,
    Promotion, PromotionRule, PromotionTarget, PromotionScope, DiscountType,
    Order, StockHistory
)


class FakeGateway:
    """In-memory payment gateway recording every call."""

    def __init__(self):
        self.charges = []
        self.cancelled = []
        self.fail_cancel = False
        self.signature_valid = True
        self.on_cancel = None
        self._counter = 0

    def create_charge(self, order_id, amount):
        self._counter += 1
        transaction_id = f'trx-{self._counter}'
        self.charges.append((order_id, amount))
        return {
            'transaction_id': transaction_id,
            'order_id': order_id,
            'gross_amount': str(amount),
            'actions': [{'name': 'generate-qr-code', 'method': 'GET', 'url': f'https://qr.test/{transaction_id}'}],
            'qr_string': 'qr-data',
            'expiry_time': '2030-01-01 00:15:00',
        }

    def cancel(self, order_id):
        if self.on_cancel:
            self.on_cancel(order_id)
        if self.fail_cancel:
            raise PaymentFailedError('Payment gateway unavailable')
        self.cancelled.append(order_id)
        return {'status_code': '200', 'transaction_status': 'cancel'}

    def verify_signature(self, payload):
        return self.signature_valid


class RecordingActivityLogger:
    """Activity logger that keeps events in memory instead of writing them."""

    def __init__(self):
        self.events = []

    def log(self, actor_id, action, entity_type, entity_id, details=None):
        self.events.append({
            'actor_id': actor_id,
            'action': action,
            'entity_type': entity_type,
            'entity_id': entity_id,
            'details': details,
        })

    def actions(self):
        return [event['action'] for event in self.events]


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application instance on a throwaway SQLite database."""

    class TestConfig(Config):
        TESTING = True
        DEBUG = False
        ENV = 'testing'
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'kasir_test.db'}"
        SQLALCHEMY_ECHO = False
        MIDTRANS_SERVER_KEY = 'SB-Mid-server-test-key'
        SENTRY_DSN = None

    app = create_app(TestConfig)
    Base.metadata.create_all(database.engine)

    yield app

    database.db_session.remove()
    Base.metadata.drop_all(database.engine)
    database.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session shared with the services (same thread, same scoped session)."""
    session = get_session()
    yield session
    session.rollback()
    session.remove()


@pytest.fixture(scope='function')
def fake_gateway():
    return FakeGateway()


@pytest.fixture(scope='function')
def activity_recorder():
    return RecordingActivityLogger()


@pytest.fixture(scope='function')
def order_service(app, fake_gateway, activity_recorder):
    """The application's order service wired to the fake gateway and logger."""
    service = app.extensions['order_service']
    service.gateway = fake_gateway
    service.activity_logger = activity_recorder
    return service


@pytest.fixture(scope='function')
def actor_id():
    return uuid.uuid4()


@pytest.fixture(scope='function')
def drinks(session):
    category = Category(name='Drinks')
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def food(session):
    category = Category(name='Food')
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def coffee(session, drinks):
    """Product priced 10000 with 10 units in stock."""
    product = Product(name='Kopi Susu', category_id=drinks.id, price=10000, cost_price=6000, stock=10)
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def fried_rice(session, food):
    """Product priced 25000 with 5 units in stock."""
    product = Product(name='Nasi Goreng', category_id=food.id, price=25000, cost_price=15000, stock=5)
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def extra_shot(session, coffee):
    option = ProductOption(product_id=coffee.id, name='Extra Shot', additional_price=5000)
    session.add(option)
    session.commit()
    return option


@pytest.fixture(scope='function')
def cash_method(session):
    method = PaymentMethod(name='Cash', is_active=True)
    session.add(method)
    session.commit()
    return method


@pytest.fixture(scope='function')
def qris_method(session):
    method = PaymentMethod(name='QRIS', is_active=True)
    session.add(method)
    session.commit()
    return method


@pytest.fixture(scope='function')
def cancel_reason(session):
    reason = CancellationReason(reason='Customer changed their mind', is_active=True)
    session.add(reason)
    session.commit()
    return reason


@pytest.fixture(scope='function')
def make_promotion(session):
    """Factory for promotions; defaults to an active 10% order-scope promotion."""

    def _make(rules=(), targets=(), **kwargs):
        now = datetime.now(timezone.utc)
        values = {
            'name': 'Promo',
            'scope': PromotionScope.ORDER,
            'discount_type': DiscountType.PERCENTAGE,
            'discount_value': 10,
            'max_discount_amount': None,
            'start_date': now - timedelta(days=1),
            'end_date': now + timedelta(days=1),
            'is_active': True,
        }
        values.update(kwargs)
        promotion = Promotion(**values)
        promotion.rules = [PromotionRule(rule_type=t, rule_value=v) for t, v in rules]
        promotion.targets = [PromotionTarget(target_type=t, target_id=str(v)) for t, v in targets]
        session.add(promotion)
        session.commit()
        return promotion

    return _make


@pytest.fixture(scope='function')
def stock_entries(session):
    """Ledger entries of a product in replay order."""

    def _entries(product_id):
        return (
            session.query(StockHistory)
            .filter(StockHistory.product_id == product_id)
            .order_by(StockHistory.id)
            .all()
        )

    return _entries


@pytest.fixture(scope='function')
def money_invariant():
    """Checker for the totals of an order dict or Order."""

    def _check(order):
        if isinstance(order, Order):
            gross, discount, net = order.gross_total, order.discount_amount, order.net_total
        else:
            gross, discount, net = order['gross_total'], order['discount_amount'], order['net_total']
        assert net == gross - discount
        assert 0 <= discount <= gross
        assert net >= 0

    return _check
