"""
CLI Commands for the loyalty ledger.

Usage:
    flask ledger create-superuser UTORID EMAIL   # Bootstrap an administrator
    flask ledger seed                            # Load demo users and promotions
"""
from .ledger import ledger_cli


def init_app(app):
    """Register all CLI commands with the Flask app."""
    app.cli.add_command(ledger_cli)
