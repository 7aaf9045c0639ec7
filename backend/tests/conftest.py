"""
Pytest fixtures for poskasir backend tests.

Provides a file-backed SQLite app (worker threads opened by fetch_all need
their own connections to the same database), per-test table cleanup, role
users, a cookie login helper, and fakes for object storage and the payment
gateway.
"""

import pytest

from poskasir import create_app
from poskasir.cli import seed_reference_data
from poskasir.errors import StorageError
from poskasir.extensions import db
from poskasir.models import CancellationReason, Category, PaymentMethod, Product, User
from poskasir.services.auth_service import hash_password
from poskasir.services.payment_gateway import notification_signature
from poskasir.storage import ObjectStorage

PASSWORD = "Password123"
MIDTRANS_KEY = "SB-Mid-server-test-key"


class FakeStorage(ObjectStorage):
    """In-memory object storage recording every upload."""

    def __init__(self):
        self.bucket = "test-bucket"
        self.objects = {}
        self.uploads = []
        self.fail_links = False
        self.reachable = True

    def upload_file(self, key, data, content_type):
        self.uploads.append((key, len(data), content_type))
        self.objects[key] = data
        return self.get_file_share_link(key)

    def get_file_share_link(self, key):
        if self.fail_links:
            raise StorageError("share link failed")
        return f"https://cdn.test/{key}"

    def bucket_exists(self):
        return self.reachable


class FakeGateway:
    """Stands in for MidtransClient; answers every charge like a sandbox QRIS charge."""

    def __init__(self):
        self.charges = []

    def charge_qris(self, order_id, gross_amount):
        self.charges.append((order_id, gross_amount))
        return {
            "status_code": "201",
            "transaction_id": f"trx-{order_id}",
            "order_id": order_id,
            "gross_amount": f"{gross_amount}.00",
            "qr_string": "00020101021226620014COM.GO-JEK.WWW",
            "expiry_time": "2026-10-19 12:15:00",
            "actions": [{"name": "generate-qr-code", "method": "GET", "url": "https://example.test/qr"}],
        }


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_path = tmp_path_factory.mktemp("db") / "poskasir-test.sqlite3"
    app = create_app({
        'TESTING': True,
        'APP_ENV': 'testing',
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False}},
        'BCRYPT_ROUNDS': 4,
        'STORAGE_PROVIDER': '',
        'MIDTRANS_SERVER_KEY': MIDTRANS_KEY,
        'WEB_FRONTEND_CROSS_ORIGIN': False,
        'COOKIE_DOMAIN': None,
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


@pytest.fixture(scope='function', autouse=True)
def storage(app):
    """Fresh fake storage for every test."""
    fake = FakeStorage()
    app.extensions["storage"] = fake
    return fake


@pytest.fixture(scope='function', autouse=True)
def gateway(app):
    """Fresh fake payment gateway for every test."""
    fake = FakeGateway()
    app.extensions["payment_gateway"] = fake
    return fake


def make_user(username: str, role: str, *, is_active: bool = True) -> User:
    user = User(
        username=username,
        email=f"{username}@poskasir.test",
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return make_user("manager", "manager")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return make_user("cashier", "cashier")


@pytest.fixture(scope='function')
def reference_data(db_session):
    """Seeded payment methods, cancellation reasons and categories keyed by name."""
    seed_reference_data()
    return {
        "payment_methods": {m.name: m.id for m in db_session.query(PaymentMethod).all()},
        "reasons": {r.reason: r.id for r in db_session.query(CancellationReason).all()},
        "categories": {c.name: c.id for c in db_session.query(Category).all()},
    }


@pytest.fixture(scope='function')
def coffee(db_session):
    """Coffee at 15000 (cost 8000) with 10 in stock."""
    category = Category(name="Kopi")
    db_session.add(category)
    db_session.commit()
    product = Product(name="Coffee", category_id=category.id, price=15000, cost_price=8000, stock=10)
    db_session.add(product)
    db_session.commit()
    return product


def login(client, user: User, password: str = PASSWORD):
    """Log in through the API so the session cookies land on the client."""
    response = client.post('/api/v1/auth/login', json={
        'email': user.email,
        'password': password,
    })
    assert response.status_code == 200, response.get_json()
    return response


def signed_notification(order_id: str, transaction_status: str, *, gross_amount: str = "40000.00",
                        status_code: str = "200", key: str = MIDTRANS_KEY) -> dict:
    """Midtrans notification body with a valid signature_key."""
    return {
        "order_id": order_id,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "transaction_status": transaction_status,
        "transaction_id": f"trx-{order_id}",
        "fraud_status": "accept",
        "signature_key": notification_signature(order_id, status_code, gross_amount, key),
    }
