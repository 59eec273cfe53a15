# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/coinseal/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email superadmin@coinseal.local] [--coins 1000000]
#   Idempotent bootstrap: creates the root SuperAdmin and funds it with a MANUAL_TOPUP.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Account inspection/bootstrap:
# - python -m flask accounts list [--role COMPANY]
#   List accounts with role, company and balance.
# - python -m flask accounts create-superadmin --name "Root" --email root@coinseal.local --password "Password123!"
#   Create an additional SuperAdmin.
#
# Ledger:
# - python -m flask coins top-up 50000 --note "Quarterly funding"
#   Mint coins into the system account.
# - python -m flask coins stats
#   Print system totals.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import CoinSealError
from .extensions import db
from .models import Account, CoinTransaction
from .roles import Role, TransactionReason
from .services import identity_service, ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Super Admin', help='SuperAdmin display name')
@click.option('--email', default='superadmin@coinseal.local', help='SuperAdmin email')
@click.option('--password', default='Password123!', help='SuperAdmin password')
@click.option('--coins', type=int, default=None, help='Initial coins (defaults to SUPERADMIN_INITIAL_COINS)')
@with_appcontext
def init_system(name, email, password, coins):
    """
    Initialize CoinSeal: root SuperAdmin plus its initial coin pool.

    Safe to run repeatedly: an existing SuperAdmin is reused and the
    initial top-up only happens once.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing CoinSeal...")

    existing = db.session.query(Account).filter_by(role=Role.SUPERADMIN).order_by(Account.id.asc()).first()
    if existing:
        click.echo(f"PASS Using existing SuperAdmin: {existing.email} (ID: {existing.id})")
    else:
        try:
            account = identity_service.bootstrap_superadmin(name, email, password)
        except CoinSealError as e:
            raise click.ClickException(e.message)
        click.echo(f"PASS Created SuperAdmin: {account.email} (ID: {account.id})")

    already_funded = (
        db.session.query(CoinTransaction.id)
        .filter(CoinTransaction.reason == TransactionReason.MANUAL_TOPUP)
        .first()
        is not None
    )
    if already_funded:
        click.echo("PASS System account already funded, skipping initial top-up")
    else:
        amount = coins if coins is not None else current_app.config["SUPERADMIN_INITIAL_COINS"]
        if amount > 0:
            txn = ledger_service.top_up(amount, note="Initial system funding")
            click.echo(f"PASS Funded system account {txn.to_account_id} with {amount} coins")

    click.echo("DONE CoinSeal initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('accounts')
def accounts_group():
    """Account inspection and bootstrap commands."""


@accounts_group.command('list')
@click.option('--role', type=click.Choice(list(Role.ALL)), help='Filter by role')
@with_appcontext
def list_accounts(role):
    """List all accounts with role, company and balance."""
    query = db.session.query(Account)
    if role:
        query = query.filter_by(role=role)
    accounts = query.order_by(Account.id.asc()).all()

    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<32} {'Role':<22} {'Company':<8} {'Coins':>12} {'Active':<6}")
    click.echo("="*100)

    for account in accounts:
        company = str(account.company_id) if account.company_id else "-"
        active_str = "Yes" if account.is_active else "No"
        click.echo(
            f"{account.id:<5} {account.email:<32} {account.kind.label():<22} {company:<8} {account.coins:>12} {active_str:<6}"
        )

    click.echo("="*100 + "\n")


@accounts_group.command('create-superadmin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_superadmin_cli(name, email, password):
    """Create a SuperAdmin account (no creator)."""
    try:
        account = identity_service.bootstrap_superadmin(name, email, password)
    except CoinSealError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created SuperAdmin: {account.email} (ID: {account.id})")


@click.group('coins')
def coins_group():
    """Ledger maintenance commands."""


@coins_group.command('top-up')
@click.argument('amount', type=int)
@click.option('--note', default=None, help='Note stored on the MANUAL_TOPUP transaction')
@with_appcontext
def top_up_cli(amount, note):
    """Mint AMOUNT coins into the system account."""
    try:
        txn = ledger_service.top_up(amount, note=note)
    except CoinSealError as e:
        raise click.ClickException(e.message)
    account = db.session.get(Account, txn.to_account_id)
    click.echo(f"PASS Topped up {account.email} by {amount}. New balance: {account.coins}")


@coins_group.command('stats')
@with_appcontext
def stats_cli():
    """Print account, coin and session totals."""
    try:
        system = ledger_service.get_system_account()
        stats = ledger_service.system_stats(identity_service.resolve_actor(system.id))
    except CoinSealError as e:
        raise click.ClickException(e.message)

    click.echo(f"Total accounts:     {stats['total_accounts']}")
    for role, count in stats["accounts_by_role"].items():
        click.echo(f"  {role:<16}  {count}")
    click.echo(f"Coins in circulation: {stats['total_coins']}")
    click.echo(f"Coins minted:         {stats['total_minted']}")
    click.echo(f"Total sessions:     {stats['total_sessions']}")
    for status, count in stats["sessions_by_status"].items():
        click.echo(f"  {status:<16}  {count}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(coins_group)
