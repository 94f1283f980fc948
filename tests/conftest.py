"""
Shared fixtures for the loyalty ledger tests.

The `app` fixture keeps an application context pushed for the whole test, so
model fixtures, service calls and test-client requests share one session.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from loyalty_ledger import create_app
from loyalty_ledger.extensions import db
from loyalty_ledger.models import Promotion, PromotionType, Role, User
from loyalty_ledger.services import get_ledger
from loyalty_ledger.services.commands import CallerContext


def make_user(utorid, role=Role.REGULAR, points=0, verified=True, suspicious=False):
    user = User(
        utorid=utorid,
        email=f'{utorid}@example.com',
        name=utorid.title(),
        role=role.value,
        points=points,
        verified=verified,
        suspicious=suspicious,
    )
    db.session.add(user)
    db.session.commit()
    return user


def caller_for(user):
    """CallerContext for a stored user."""
    return CallerContext(subject=user.id, role=Role(user.role))


def headers_for(user):
    """Gateway headers identifying `user` to the API."""
    return {
        'X-Auth-Subject': str(user.id),
        'X-Auth-Role': user.role,
        'Content-Type': 'application/json',
    }


@pytest.fixture
def app():
    """Create test application."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ledger(app):
    return get_ledger()


@pytest.fixture
def sample_user(app):
    """Verified regular member with an empty balance."""
    return make_user('member01')


@pytest.fixture
def other_user(app):
    """Second verified regular member."""
    return make_user('member02')


@pytest.fixture
def cashier(app):
    return make_user('cashier1', role=Role.CASHIER)


@pytest.fixture
def suspicious_cashier(app):
    return make_user('cashier2', role=Role.CASHIER, suspicious=True)


@pytest.fixture
def manager(app):
    return make_user('manager1', role=Role.MANAGER)


@pytest.fixture
def superuser(app):
    return make_user('superu01', role=Role.SUPERUSER)


@pytest.fixture
def promotions(app):
    """
    A spread of promotions around now:

    - rate_promo: automatic, +0.5 pts per dollar, minimum spend $10
    - one_time_promo: one-time, +100 pts
    - expired_promo: one-time, ended yesterday
    - future_promo: automatic, starts tomorrow
    """
    now = datetime.utcnow()
    promos = {
        'rate_promo': Promotion(
            name='Half point bonus',
            description='Extra half point per dollar',
            promo_type=PromotionType.AUTOMATIC.value,
            start_time=now - timedelta(days=1),
            end_time=now + timedelta(days=1),
            min_spending=Decimal('10'),
            rate=Decimal('0.5'),
        ),
        'one_time_promo': Promotion(
            name='Welcome gift',
            description='100 points once',
            promo_type=PromotionType.ONE_TIME.value,
            start_time=now - timedelta(days=1),
            end_time=now + timedelta(days=1),
            points=100,
        ),
        'expired_promo': Promotion(
            name='Last week',
            description='Already over',
            promo_type=PromotionType.ONE_TIME.value,
            start_time=now - timedelta(days=7),
            end_time=now - timedelta(days=1),
            points=50,
        ),
        'future_promo': Promotion(
            name='Next week',
            description='Not started',
            promo_type=PromotionType.AUTOMATIC.value,
            start_time=now + timedelta(days=1),
            end_time=now + timedelta(days=7),
            rate=Decimal('1'),
        ),
    }
    db.session.add_all(promos.values())
    db.session.commit()
    return promos
