# seed.py
# Operator commands for the key-value store.

import click
from flask.cli import with_appcontext

from certledger.extensions import get_services
from certledger.models import InstitutionRecord, db
from certledger.utils import iso_timestamp


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Creates the key-value table used by the SQL store backend."""
    db.create_all()
    click.echo("Key-value store table created.")


@click.command('register-institution')
@click.argument('user_id')
@click.argument('institution_name')
@click.option('--country', default=None, help="Country of the institution.")
@click.option('--type', 'institution_type', default=None, help="e.g. University, College.")
@with_appcontext
def register_institution_command(user_id, institution_name, country, institution_type):
    """Writes the institution record for an identity-provider user id."""
    records = get_services().records
    existing = records.get_institution(user_id)
    institution = InstitutionRecord(
        institution_name=institution_name,
        country=country,
        institution_type=institution_type,
        created_at=existing.created_at if existing else iso_timestamp(),
    )
    records.save_institution(user_id, institution)
    click.echo(f"Institution '{institution_name}' registered for user {user_id}.")
