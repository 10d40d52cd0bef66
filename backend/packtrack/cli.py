# Overview: Flask CLI command groups for bootstrap, evidence checks and ledger audits.

# backend/packtrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system create-workspace --name "Main Warehouse" --code "MAIN"
#   Create a workspace (tenant).
# - python -m flask system list-workspaces
#
# Evidence:
# - python -m flask evidence verify 42 --workspace-id 1
#   Re-hash one stored video; exits 1 when it fails verification.
# - python -m flask evidence verify-order 7 --workspace-id 1
#   Re-hash every video recorded for an order.
#
# Ledger:
# - python -m flask ledger check --workspace-id 1
#   Compare stored quantities with movement sums; exits 1 on drift.

import click
from flask.cli import with_appcontext

from .errors import FulfillmentError
from .extensions import db
from .models import Workspace
from .services import evidence_service, ledger_service
from .services.context import OperationContext


def _context(workspace_id: int) -> OperationContext:
    workspace = db.session.get(Workspace, workspace_id)
    if workspace is None:
        raise click.ClickException(f"Workspace ID {workspace_id} not found")
    return OperationContext(workspace_id=workspace_id)


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@system_group.command('create-workspace')
@click.option('--name', required=True, help='Workspace name')
@click.option('--code', default=None, help='Short code (unique)')
@with_appcontext
def create_workspace(name, code):
    """Create a new workspace (tenant)."""
    if code:
        existing = db.session.query(Workspace).filter_by(code=code).first()
        if existing:
            click.echo(f"FAIL Workspace with code '{code}' already exists")
            return

    workspace = Workspace(name=name, code=code, is_active=True)
    db.session.add(workspace)
    db.session.commit()
    click.echo(f"PASS Created workspace: {workspace.name} (ID: {workspace.id}, Code: {workspace.code or '-'})")


@system_group.command('list-workspaces')
@with_appcontext
def list_workspaces():
    """List all workspaces."""
    workspaces = db.session.query(Workspace).order_by(Workspace.id).all()
    if not workspaces:
        click.echo("No workspaces found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active'}")
    click.echo("=" * 60)
    for ws in workspaces:
        click.echo(f"{ws.id:<5} {ws.name:<30} {ws.code or '-':<15} {'Yes' if ws.is_active else 'No'}")
    click.echo("=" * 60 + "\n")


# =============================================================================
# EVIDENCE
# =============================================================================

@click.group('evidence')
def evidence_group():
    """Packing video integrity commands."""


def _echo_verification(result) -> None:
    status = "PASS" if result.valid else "FAIL"
    click.echo(f"{status} Video {result.video_id}: {result.reason}")
    if not result.valid and result.current_hash:
        click.echo(f"     stored  {result.original_hash}")
        click.echo(f"     current {result.current_hash}")


@evidence_group.command('verify')
@click.argument('video_id', type=int)
@click.option('--workspace-id', type=int, required=True, help='Workspace ID')
@with_appcontext
def verify_video(video_id, workspace_id):
    """Re-hash one stored video."""
    ctx = _context(workspace_id)
    try:
        result = evidence_service.verify_evidence(ctx, video_id)
    except FulfillmentError as e:
        raise click.ClickException(e.message)
    _echo_verification(result)
    if not result.valid:
        raise SystemExit(1)


@evidence_group.command('verify-order')
@click.argument('order_id', type=int)
@click.option('--workspace-id', type=int, required=True, help='Workspace ID')
@with_appcontext
def verify_order_videos(order_id, workspace_id):
    """Re-hash every video recorded for an order."""
    ctx = _context(workspace_id)
    try:
        video_ids = [v.id for v in evidence_service.list_videos_for_order(ctx, order_id)]
    except FulfillmentError as e:
        raise click.ClickException(e.message)

    if not video_ids:
        click.echo(f"No videos recorded for order {order_id}")
        return

    failures = 0
    for video_id in video_ids:
        result = evidence_service.verify_evidence(ctx, video_id)
        _echo_verification(result)
        failures += 0 if result.valid else 1
    click.echo(f"{len(video_ids) - failures}/{len(video_ids)} videos verified")
    if failures:
        raise SystemExit(1)


# =============================================================================
# LEDGER
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Stock ledger audit commands."""


@ledger_group.command('check')
@click.option('--workspace-id', type=int, required=True, help='Workspace ID')
@with_appcontext
def check_ledger(workspace_id):
    """Compare each product's stored quantity with its movement sum."""
    ctx = _context(workspace_id)
    drift = ledger_service.check_ledger_consistency(ctx)
    if not drift:
        click.echo("PASS Stored quantities match the movement ledger")
        return

    click.echo(f"FAIL {len(drift)} product(s) drifted from the ledger")
    click.echo(f"{'ID':<6} {'SKU':<20} {'Stored':>8} {'Ledger':>8}")
    for row in drift:
        click.echo(
            f"{row['product_id']:<6} {row['sku']:<20} "
            f"{row['stored_quantity']:>8} {row['ledger_quantity']:>8}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(evidence_group)
    app.cli.add_command(ledger_group)
