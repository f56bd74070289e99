"""
Pytest fixtures for Sierra backend tests.

Provides an in-memory database per test, seeded roles and permissions,
admin/staff users with bearer headers, and the master data most
workflows need (customer, products, accounts, primary supplier).
"""

import pytest
from sierra import create_app
from sierra.extensions import db
from sierra.services.auth_service import create_user, create_default_roles
from sierra.services import (
    account_service,
    customer_service,
    permission_service,
    products_service,
    supplier_service,
)


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing with a fresh schema."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def seed(app):
    """Setup default roles and permissions."""
    create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()


@pytest.fixture(scope='function')
def admin_user(seed):
    return create_user("admin", "admin@sierra.test", TEST_PASSWORD, full_name="Admin", role_name="admin")


@pytest.fixture(scope='function')
def staff_user(seed):
    return create_user("staff", "staff@sierra.test", TEST_PASSWORD, full_name="Counter Staff", role_name="staff")


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin", TEST_PASSWORD))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "staff", TEST_PASSWORD))


# =============================================================================
# MASTER DATA
# =============================================================================

@pytest.fixture(scope='function')
def customer(app):
    return customer_service.create_customer({
        "name": "Kandy Hardware Stores",
        "phone": "0812233445",
        "city": "Kandy",
        "credit_limit_cents": 50_000_000,
    })


@pytest.fixture(scope='function')
def other_customer(app):
    return customer_service.create_customer({"name": "Galle Electricals", "city": "Galle"})


@pytest.fixture(scope='function')
def cable(app):
    """2.5mm house wire, 100 coils on hand."""
    return products_service.create_product({
        "sku": "HW-2.5",
        "name": "House Wire 2.5mm",
        "category": "house_wire",
        "unit_price_cents": 5995,
        "cost_price_cents": 4500,
        "stock_quantity": 100,
        "reorder_level": 10,
    }, user_id=None)


@pytest.fixture(scope='function')
def flex(app):
    """Flexible cord with only 5 rolls on hand."""
    return products_service.create_product({
        "sku": "FLX-1.0",
        "name": "Flexible Cord 1.0mm",
        "category": "flexible",
        "unit_price_cents": 2500,
        "cost_price_cents": 1800,
        "stock_quantity": 5,
    }, user_id=None)


@pytest.fixture(scope='function')
def cash_account(app):
    return account_service.create_account({
        "account_name": "Cash in Hand",
        "account_type": "cash",
    })


@pytest.fixture(scope='function')
def bank(app):
    return account_service.create_bank({"bank_code": "BOC", "bank_name": "Bank of Ceylon"})


@pytest.fixture(scope='function')
def bank_account(bank):
    return account_service.create_account({
        "account_name": "BOC Current",
        "account_type": "bank",
        "bank_id": bank.id,
        "account_number": "0071234567",
    })


@pytest.fixture(scope='function')
def supplier(app):
    return supplier_service.create_supplier({
        "supplier_code": "KEL",
        "name": "Kelani Cables PLC",
        "is_primary": True,
    })
