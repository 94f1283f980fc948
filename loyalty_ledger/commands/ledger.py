"""
CLI Commands for ledger administration.

    flask ledger create-superuser admin001 admin@example.com
    flask ledger seed
"""
from datetime import datetime, timedelta
from decimal import Decimal

import click
from flask.cli import with_appcontext

from ..extensions import db
from ..models import Promotion, PromotionType, Role, User
from ..models.user import UTORID_PATTERN
from ..services import get_ledger
from ..services.commands import CallerContext, CreatePurchase


@click.group('ledger')
def ledger_cli():
    """Loyalty ledger administration commands."""
    pass


@ledger_cli.command('create-superuser')
@click.argument('utorid')
@click.argument('email')
@click.option('--name', default='Administrator', help='Display name')
@with_appcontext
def create_superuser(utorid, email, name):
    """Create a verified superuser account."""
    if not UTORID_PATTERN.match(utorid):
        raise click.BadParameter('utorid must be 7-8 alphanumeric characters', param_hint='UTORID')

    if User.query.filter_by(utorid=utorid.lower()).first():
        click.echo(f"User {utorid} already exists")
        return

    user = User(
        utorid=utorid.lower(),
        email=email.lower(),
        name=name,
        role=Role.SUPERUSER.value,
        verified=True,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"Created superuser {user.utorid} (id {user.id})")


@ledger_cli.command('seed')
@with_appcontext
def seed():
    """
    Load demo accounts and promotions.

    Safe to re-run: existing utorids are skipped.
    """
    accounts = [
        ('super001', 'super001@example.com', 'Sam Super', Role.SUPERUSER),
        ('manag001', 'manag001@example.com', 'Morgan Manager', Role.MANAGER),
        ('cashi001', 'cashi001@example.com', 'Casey Cashier', Role.CASHIER),
        ('regul001', 'regul001@example.com', 'Riley Regular', Role.REGULAR),
        ('regul002', 'regul002@example.com', 'Jordan Regular', Role.REGULAR),
    ]

    created = 0
    for utorid, email, name, role in accounts:
        if User.query.filter_by(utorid=utorid).first():
            continue
        db.session.add(User(utorid=utorid, email=email, name=name, role=role.value, verified=True))
        created += 1
    db.session.commit()
    click.echo(f"Users: {created} created")

    now = datetime.utcnow()
    if not Promotion.query.first():
        db.session.add_all([
            Promotion(
                name='Welcome bonus',
                description='Half a point extra per dollar on purchases over $10',
                promo_type=PromotionType.AUTOMATIC.value,
                start_time=now - timedelta(days=1),
                end_time=now + timedelta(days=30),
                min_spending=Decimal('10'),
                rate=Decimal('0.5'),
            ),
            Promotion(
                name='First visit',
                description='100 points once per member',
                promo_type=PromotionType.ONE_TIME.value,
                start_time=now - timedelta(days=1),
                end_time=now + timedelta(days=30),
                points=100,
            ),
        ])
        db.session.commit()
        click.echo("Promotions: 2 created")

    cashier = User.query.filter_by(utorid='cashi001').first()
    member = User.query.filter_by(utorid='regul001').first()
    if cashier and member and member.transactions.count() == 0:
        result = get_ledger().create_purchase(
            CallerContext(subject=cashier.id, role=Role(cashier.role)),
            CreatePurchase(owner_utorid=member.utorid, spent=Decimal('25')),
        )
        click.echo(f"Purchase {result.transaction_id}: {member.utorid} earned {result.earned_points} pts")
