"""
Flask CLI commands.

Commands:
- flask init-db: Create the schema for all models
- flask seed-currencies: Insert the default currencies
"""
from decimal import Decimal

import click
from sqlalchemy.exc import SQLAlchemyError

from agenda.database import create_schema, get_session
from agenda.models import Currency

DEFAULT_CURRENCIES = (
    ('USD', '$', 2, Decimal('0.01')),
    ('EUR', '€', 2, Decimal('0.01')),
    ('ARS', '$', 2, Decimal('0.01')),
)


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables that do not exist yet."""
        create_schema()
        click.echo(click.style('Schema created.', fg='green', bold=True))

    @app.cli.command('seed-currencies')
    def seed_currencies():
        """Insert USD, EUR and ARS unless already present."""
        db_session = get_session()
        created = 0
        try:
            for name, symbol, decimals, rounding in DEFAULT_CURRENCIES:
                if db_session.query(Currency).filter_by(name=name).first():
                    click.echo(f'   {name} already exists, skipped')
                    continue
                db_session.add(Currency(name=name, symbol=symbol, decimals=decimals, rounding=rounding))
                created += 1
            db_session.commit()
        except SQLAlchemyError as e:
            db_session.rollback()
            click.echo(click.style(f'Error seeding currencies: {e}', fg='red'))
            raise click.Abort()

        click.echo(click.style(f'{created} currencies created.', fg='green', bold=True))
