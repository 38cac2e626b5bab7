"""
Flask CLI commands for back-office maintenance.

Commands:
- flask init-db: Create all tables
- flask coupon-status CODE --outlet-id ID: Show usage and validity of a coupon
"""
import click

from app.database import create_tables, get_session
from app.exceptions import PosError, CouponInvalidError
from app.services.coupon_service import CouponService
from app.services.entity_store import EntityStore
from app.utils.dates import isoformat


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the coupon and sale tables if they do not exist."""
        create_tables(app)
        click.echo(click.style('✅ Tables created', fg='green', bold=True))

    @app.cli.command('coupon-status')
    @click.argument('code')
    @click.option('--outlet-id', default=None, help='Outlet that owns the coupon')
    def coupon_status(code, outlet_id):
        """Print usage counters and whether CODE can be redeemed now."""
        service = CouponService(EntityStore(get_session()))

        try:
            coupon = service.get_by_code(code, outlet_id)
        except PosError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(f'\nCoupon {coupon.code}', bold=True))
        click.echo(f'   ID: {coupon.id}')
        click.echo(f'   Outlet: {coupon.outlet_id}')
        click.echo(f'   Uses: {coupon.used_count}/{coupon.max_uses}')
        click.echo(f'   Valid: {isoformat(coupon.start_date)} -> {isoformat(coupon.end_date)}')

        try:
            service.validate_for_redemption(code, outlet_id)
        except CouponInvalidError as e:
            click.echo(click.style(f'\n⚠️  Not redeemable: {e.reason}', fg='yellow'))
            return
        click.echo(click.style('\n✅ Redeemable', fg='green'))
