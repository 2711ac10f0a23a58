import pytest
import uuid
from decimal import Decimal

from agenda import create_app
from agenda.database import get_session
from agenda.models import (
    Currency, Company, AppUser, UserCompany, CompanyService, CompanyProduct,
    CompanyProductVariant, CompanySpace, CompanyStaff
)


def _suffix():
    return str(uuid.uuid4())[:8]


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function')
def app_context(app):
    """
    Hold one app context for the whole test.

    Requests made by the test client reuse it, so the scoped session (and
    the fixture objects bound to it) survives between requests.
    """
    with app.app_context():
        yield


@pytest.fixture(scope='function')
def client(app, app_context):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app_context):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def currency(session):
    """Euro-like currency with a unique code."""
    currency = Currency(
        name=f'T{uuid.uuid4().hex[:8].upper()}',
        symbol='€',
        decimals=2,
        rounding=Decimal('0.01'),
        is_active=True
    )
    session.add(currency)
    session.commit()
    return currency


def _make_company(session, currency, label):
    suffix = _suffix()
    company = Company(
        slug=f'test-company-{label}-{suffix}',
        name=f'Test Company {label} {suffix}',
        currency_id=currency.id if currency else None,
        active=True
    )
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def company1(session, currency):
    """Create first test company."""
    return _make_company(session, currency, '1')


@pytest.fixture(scope='function')
def company2(session, currency):
    """Create second test company for isolation tests."""
    return _make_company(session, currency, '2')


def _make_member(session, company, role, first_name):
    suffix = _suffix()
    user = AppUser(
        email=f'{first_name.lower()}-{suffix}@test.com',
        first_name=first_name,
        last_name='Test',
        active=True
    )
    session.add(user)
    session.flush()

    session.add(UserCompany(
        user_id=user.id,
        company_id=company.id,
        role=role,
        active=True
    ))
    session.commit()
    return user


@pytest.fixture(scope='function')
def owner(session, company1):
    """OWNER of company1."""
    return _make_member(session, company1, 'OWNER', 'Olivia')


@pytest.fixture(scope='function')
def staff_user(session, company1):
    """STAFF member of company1."""
    return _make_member(session, company1, 'STAFF', 'Sam')


@pytest.fixture(scope='function')
def client_user(session, company1):
    """CLIENT of company1."""
    return _make_member(session, company1, 'CLIENT', 'Carla')


@pytest.fixture(scope='function')
def owner2(session, company2):
    """OWNER of company2."""
    return _make_member(session, company2, 'OWNER', 'Oscar')


@pytest.fixture(scope='function')
def service(session, company1):
    """Haircut: 50.00, 30 minutes."""
    service = CompanyService(
        company_id=company1.id,
        name='Haircut',
        description='Wash and cut',
        category='Hair',
        duration=30,
        price=Decimal('50.00'),
        status='Active'
    )
    session.add(service)
    session.commit()
    return service


@pytest.fixture(scope='function')
def service2(session, company2):
    """Service owned by company2."""
    service = CompanyService(
        company_id=company2.id,
        name='Massage',
        duration=60,
        price=Decimal('80.00'),
        status='Active'
    )
    session.add(service)
    session.commit()
    return service


@pytest.fixture(scope='function')
def shampoo(session, company1):
    """Product with a single usable variant (20.00, 10 in stock)."""
    product = CompanyProduct(company_id=company1.id, name='Shampoo', unit='unit', is_active=True)
    product.variants = [
        CompanyProductVariant(
            name='Regular', sell_price=Decimal('20.00'), current_stock=Decimal('10'), is_active=True
        ),
    ]
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def serum(session, company1):
    """Product with two usable volume variants (30ml at 25.00, 50ml at 40.00)."""
    product = CompanyProduct(company_id=company1.id, name='Serum', description='Hair serum', is_active=True)
    product.variants = [
        CompanyProductVariant(
            name='Small', attributes={'volume': '30ml'}, sell_price=Decimal('25.00'),
            current_stock=Decimal('100'), is_active=True
        ),
        CompanyProductVariant(
            name='Large', attributes={'volume': '50ml'}, sell_price=Decimal('40.00'),
            current_stock=Decimal('100'), is_active=True
        ),
    ]
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def unpriced_product(session, company1):
    """Product whose only variant has no price."""
    product = CompanyProduct(company_id=company1.id, name='Sample', is_active=True)
    product.variants = [CompanyProductVariant(name='Free', is_active=True)]
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def space(session, company1):
    """Room 1 of company1."""
    space = CompanySpace(
        company_id=company1.id,
        name='Room 1',
        capacity=1,
        status='Active',
        gallery_images=['room1-a.jpg', 'room1-b.jpg']
    )
    session.add(space)
    session.commit()
    return space


@pytest.fixture(scope='function')
def staff_member(session, company1, staff_user):
    """Staff row for staff_user."""
    staff = CompanyStaff(company_id=company1.id, user_id=staff_user.id, position='Stylist', status='Active')
    session.add(staff)
    session.commit()
    return staff


def _login(client, user, company):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        sess['company_id'] = company.id
    return client


@pytest.fixture(scope='function')
def owner_client(client, owner, company1):
    """Client authenticated as the owner of company1."""
    return _login(client, owner, company1)


@pytest.fixture(scope='function')
def staff_client(client, staff_user, company1):
    """Client authenticated as a staff member of company1."""
    return _login(client, staff_user, company1)


@pytest.fixture(scope='function')
def client_client(client, client_user, company1):
    """Client authenticated as a client of company1."""
    return _login(client, client_user, company1)


@pytest.fixture(scope='function')
def owner2_client(client, owner2, company2):
    """Client authenticated as the owner of company2."""
    return _login(client, owner2, company2)
