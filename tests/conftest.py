import pytest
from datetime import timedelta
import uuid

from app import create_app
from app.database import create_tables, get_session
from app.services.coupon_service import CouponService
from app.services.entity_store import EntityStore
from app.services.sales_service import SaleService
from app.utils.dates import utcnow


@pytest.fixture(scope='function')
def app():
    """Create application instance backed by a fresh in-memory database."""
    app = create_app('config.TestingConfig')
    create_tables(app)
    yield app
    app.extensions['db_session'].remove()
    app.extensions['db_engine'].dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    with app.app_context():
        session = get_session()
        yield session
        session.rollback()


@pytest.fixture(scope='function')
def store(session):
    return EntityStore(session)


@pytest.fixture(scope='function')
def coupon_service(store):
    return CouponService(store)


@pytest.fixture(scope='function')
def sale_service(store):
    return SaleService(store)


@pytest.fixture(scope='function')
def outlet_id():
    return uuid.uuid4()


@pytest.fixture(scope='function')
def other_outlet_id():
    return uuid.uuid4()


@pytest.fixture(scope='function')
def coupon_data(outlet_id):
    """Payload for a coupon valid from yesterday until tomorrow."""
    now = utcnow()
    return {
        'outlet_id': str(outlet_id),
        'code': 'SUMMER10',
        'description': 'Summer discount',
        'discount_type': 'percentage',
        'discount_value': 10,
        'max_uses': 2,
        'start_date': (now - timedelta(days=1)).isoformat(),
        'end_date': (now + timedelta(days=1)).isoformat(),
        'is_active': True,
    }


@pytest.fixture(scope='function')
def coupon(coupon_service, coupon_data):
    """Create a redeemable test coupon."""
    return coupon_service.create(coupon_data)


@pytest.fixture(scope='function')
def sale_data(outlet_id):
    return {
        'outlet_id': str(outlet_id),
        'outlet_staff_id': str(uuid.uuid4()),
        'table_id': str(uuid.uuid4()),
        'invoice_number': 'INV-001',
        'total': 100,
        'discount': 10,
        'tax': 5,
        'grand_total': 95,
        'status': 'unpaid',
    }


@pytest.fixture(scope='function')
def sale(sale_service, sale_data):
    """Create a test sale without items."""
    return sale_service.create(sale_data)


@pytest.fixture(scope='function')
def item_data():
    return {
        'product_id': str(uuid.uuid4()),
        'quantity': 2,
        'price': '25.00',
        'discount': 0,
        'total': '50.00',
    }
