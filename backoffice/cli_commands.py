"""
Flask CLI commands for database management.

Commands:
- flask init-db: Create the tables
- flask drop-db: Drop the tables
"""

import click
from sqlalchemy.exc import SQLAlchemyError

from backoffice.database import create_tables, drop_tables


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the quote, invoice and payment tables."""
        try:
            create_tables()
        except SQLAlchemyError as e:
            click.echo(click.style(f'Erreur lors de la création des tables : {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('Tables créées.', fg='green', bold=True))

    @app.cli.command('drop-db')
    @click.confirmation_option(prompt='Supprimer toutes les tables et leurs données ?')
    def drop_db_command():
        """Drop every table (all documents are lost)."""
        try:
            drop_tables()
        except SQLAlchemyError as e:
            click.echo(click.style(f'Erreur lors de la suppression des tables : {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('Tables supprimées.', fg='yellow', bold=True))
