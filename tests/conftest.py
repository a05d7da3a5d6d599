import pytest
import os
import uuid
from decimal import Decimal

from tradeflow import create_app
from tradeflow.database import Base, create_schema, get_session, remove_session
from tradeflow.models import Company, AppUser, UserRole, Party, PartyRole
from tradeflow.services.data_scope import build_data_scope
from tradeflow.services.pi_invoice_service import create_pi_invoice


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application instance for testing (SQLite file unless TEST_DATABASE_URL is set)."""
    database_uri = os.environ.get('TEST_DATABASE_URL')
    if not database_uri:
        database_uri = f"sqlite:///{tmp_path_factory.mktemp('db') / 'tradeflow_test.db'}"

    app = create_app('config.TestConfig', test_config={
        'SQLALCHEMY_DATABASE_URI': database_uri,
        'EXCHANGE_RATES': {'USD': Decimal('84'), 'EUR': Decimal('90')},
        'ORDER_NUMBER_SCOPE': 'global',
    })
    with app.app_context():
        create_schema()
    return app


@pytest.fixture(scope='function')
def app_context(app):
    """Push an app context so services read the test configuration."""
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app_context):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    remove_session()


@pytest.fixture(scope='function')
def company(session):
    """First test company."""
    suffix = str(uuid.uuid4())[:8]
    company = Company(name=f'Test Exports {suffix}', base_currency='INR', active=True)
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def other_company(session):
    """Second test company for isolation tests."""
    suffix = str(uuid.uuid4())[:8]
    company = Company(name=f'Other Traders {suffix}', base_currency='INR', active=True)
    session.add(company)
    session.commit()
    return company


def _make_user(session, company, role, name):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        company_id=company.id,
        email=f'{name}-{suffix}@test.com',
        full_name=name.title(),
        role=role,
        active=True
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(session, company):
    return _make_user(session, company, UserRole.ADMIN, 'admin')


@pytest.fixture(scope='function')
def staff_user(session, company):
    return _make_user(session, company, UserRole.STAFF, 'staff')


@pytest.fixture(scope='function')
def other_staff_user(session, company):
    return _make_user(session, company, UserRole.STAFF, 'staff-two')


@pytest.fixture(scope='function')
def other_company_admin(session, other_company):
    return _make_user(session, other_company, UserRole.ADMIN, 'other-admin')


@pytest.fixture(scope='function')
def admin_scope(company, admin_user):
    return build_data_scope(company.id, UserRole.ADMIN, admin_user.id)


@pytest.fixture(scope='function')
def staff_scope(company, staff_user):
    return build_data_scope(company.id, UserRole.STAFF, staff_user.id)


@pytest.fixture(scope='function')
def customer(session, company, admin_user):
    """Customer party of the first company."""
    party = Party(
        company_id=company.id,
        company_name='Gulf Foods LLC',
        role=PartyRole.CUSTOMER,
        contact_person='Omar',
        email='buyer@gulffoods.test',
        created_by=admin_user.id,
    )
    session.add(party)
    session.commit()
    return party


@pytest.fixture(scope='function')
def make_invoice(session, company, admin_user, customer):
    """
    Factory for draft PI invoices.

    Defaults: one line of 10 x 100.00 INR, no charges, advance 200.00.
    """
    def _make(user=None, currency='INR', lines=None, advance_amount='200', charges='0', **extra):
        payload = {
            'party_id': customer.id,
            'currency': currency,
            'invoice_date': extra.pop('invoice_date', '2025-06-15'),
            'delivery_term': extra.pop('delivery_term', 'FOB Mundra'),
            'advance_amount': advance_amount,
            'charges': charges,
            'lines': lines if lines is not None else [
                {'product_name': 'Basmati Rice 1121', 'quantity': 10, 'rate': '100', 'unit': 'MT'},
            ],
        }
        payload.update(extra)
        return create_pi_invoice(session, company.id, (user or admin_user).id, payload)
    return _make


@pytest.fixture(scope='function')
def invoice(make_invoice):
    """Draft INR invoice: total 1000.00, advance 200.00."""
    return make_invoice()


@pytest.fixture(scope='function')
def admin_client(client, session, company, admin_user):
    """Test client whose session carries the admin identity."""
    with client.session_transaction() as flask_session:
        flask_session['user_id'] = admin_user.id
        flask_session['company_id'] = company.id
    return client


@pytest.fixture(scope='function')
def staff_client(client, session, company, staff_user):
    with client.session_transaction() as flask_session:
        flask_session['user_id'] = staff_user.id
        flask_session['company_id'] = company.id
    return client
