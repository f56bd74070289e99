# Overview: Flask CLI command groups for bootstrap, inspection, and balance checks.

# backend/sierra/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--password "Password123!"]
#   Idempotent bootstrap: roles, permissions, admin user and a cash account.
# - python -m flask system init-permissions
#   Initialize permissions and assign defaults to roles.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system check-balances
#   Compare stored stock, outstanding and account balances against their ledgers.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --username staff1 --email staff1@sierra.local --password "Password123!" --role staff
#   Create a user (prompts if options are omitted).
#
# Accounts:
# - python -m flask accounts list
#   List company accounts with their balances.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import CompanyAccount, Product, Role, User
from .services.auth_service import create_user, create_default_roles, assign_role, PasswordValidationError, UserExistsError
from .services import permission_service
from .services.account_service import get_account_ledger
from .services.inventory_service import ledger_quantity
from .services.reporting_service import receivables_check


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', show_default=True, help='Password for the admin user')
@click.option('--cash-account', default='Cash in Hand', show_default=True, help='Name of the default cash account')
@with_appcontext
def init_system(password, cash_account):
    """
    Initialize Sierra: roles, permissions, the admin user and a cash account.

    Safe to re-run; existing rows are left alone.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Sierra...")

    click.echo("\nLIST Creating roles...")
    create_default_roles()
    roles = db.session.query(Role).all()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    click.echo("\nSECURITY Initializing permissions...")
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    click.echo("\nUSERS Creating admin user...")
    username = current_app.config["DEFAULT_ADMIN_USERNAME"]
    email = current_app.config["DEFAULT_ADMIN_EMAIL"]
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"WARN  User '{username}' already exists, skipping...")
    else:
        try:
            create_user(username=username, email=email, password=password, role_name="admin")
            click.echo(f"PASS Created user: {username} ({email}) with role 'admin'")
        except (PasswordValidationError, UserExistsError) as e:
            db.session.rollback()
            click.echo(f"FAIL Could not create '{username}': {e}")

    click.echo("\nACCOUNTS Ensuring a cash account...")
    if db.session.query(CompanyAccount).filter_by(account_type="cash").first():
        click.echo("WARN  A cash account already exists, skipping...")
    else:
        account = CompanyAccount(
            account_name=cash_account,
            account_type="cash",
            initial_balance_cents=0,
            current_balance_cents=0,
        )
        db.session.add(account)
        db.session.commit()
        click.echo(f"PASS Created cash account: {account.account_name} (ID: {account.id})")

    click.echo("\n" + "="*60)
    click.echo("DONE Sierra initialized")
    click.echo("="*60)
    click.echo(f"\nAdmin login: {username} / (the --password you chose)")
    click.echo("Password requirements: 8+ chars, uppercase, lowercase, digit, special char\n")


@system_group.command('init-permissions')
@with_appcontext
def init_permissions():
    """Create missing permissions and grant the role defaults."""
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")


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


@system_group.command('check-balances')
@with_appcontext
def check_balances():
    """Report every stored balance that disagrees with its ledger."""
    problems = 0

    for product in db.session.query(Product).order_by(Product.id):
        derived = ledger_quantity(product.id)
        if derived != product.stock_quantity:
            problems += 1
            click.echo(f"FAIL Product {product.sku}: stock {product.stock_quantity}, ledger {derived}")

    for row in receivables_check():
        problems += 1
        click.echo(
            f"FAIL Customer {row['name']} (ID: {row['customer_id']}): "
            f"outstanding {row['stored_cents']}, derived {row['derived_cents']}"
        )

    for account in db.session.query(CompanyAccount).order_by(CompanyAccount.id):
        ledger = get_account_ledger(account.id, limit=1)
        if not ledger["is_reconciled"]:
            problems += 1
            click.echo(
                f"FAIL Account {account.account_name}: balance {account.current_balance_cents}, "
                f"ledger {ledger['derived_balance_cents']}"
            )

    if problems:
        click.echo(f"\n{problems} balance(s) out of line")
    else:
        click.echo("PASS All stored balances match their ledgers")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'staff']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """Create a user with a role."""
    try:
        user = create_user(username=username, email=email, password=password)
        assign_role(user.id, role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    except (PasswordValidationError, UserExistsError, ValueError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("="*90)

    for user in users:
        roles_str = ", ".join(user.role_names()) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {roles_str}")

    click.echo("="*90 + "\n")


# =============================================================================
# ACCOUNT COMMANDS
# =============================================================================

@click.group('accounts')
def accounts_group():
    """Company account inspection."""


@accounts_group.command('list')
@with_appcontext
def list_accounts_cli():
    """List company accounts with balances (cents)."""
    accounts = db.session.query(CompanyAccount).order_by(CompanyAccount.id).all()
    if not accounts:
        click.echo("No accounts found. Run: python -m flask system init")
        return

    for account in accounts:
        status = "" if account.is_active else " (inactive)"
        click.echo(
            f"{account.id:<5} {account.account_type:<6} {account.account_name:<30} "
            f"{account.current_balance_cents:>14}{status}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(accounts_group)
