import click
from app.core.config import settings
from app.core.database import SessionLocal, engine, Base
from app.core.redis_client import create_redis_client
from app.services.contact_quota_service import utc_today
from app.services.quota_store import create_quota_store
from app.services.seed_service import SeedService, read_csv_rows
from app import models  # noqa: F401  (registers tables on Base.metadata)
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


def _quota_store():
    redis_client = create_redis_client() if settings.quota_backend == 'redis' else None
    return create_quota_store(
        settings.quota_backend,
        session_factory=SessionLocal,
        redis_client=redis_client,
        ttl_hours=settings.quota_key_ttl_hours,
    )


def _resolve_day(quota_date):
    """Validate a YYYY-MM-DD option; defaults to today (UTC). Returns None when invalid."""
    if not quota_date:
        return utc_today()
    try:
        return datetime.strptime(quota_date, "%Y-%m-%d").date().isoformat()
    except ValueError:
        click.echo("❌ Invalid date format. Use YYYY-MM-DD", err=True)
        return None


@click.group()
def cli():
    """Directory dashboard CLI commands"""
    pass


@cli.command()
@click.option('--agencies', 'agencies_path', default='data/agencies_agency_rows.csv', show_default=True,
              help='Agencies CSV export')
@click.option('--contacts', 'contacts_path', default='data/contacts_contact_rows.csv', show_default=True,
              help='Contacts CSV export')
def seed(agencies_path, contacts_path):
    """Create tables and upsert agencies and contacts from CSV exports"""
    Base.metadata.create_all(bind=engine)
    service = SeedService()
    db = SessionLocal()
    try:
        agencies = read_csv_rows(agencies_path)
        contacts = read_csv_rows(contacts_path)
        click.echo(f"Found {len(agencies)} agencies")
        click.echo(f"Found {len(contacts)} contacts")

        inserted_agencies = service.seed_agencies(db, agencies)
        click.echo(f"✓ Agencies seeded ({inserted_agencies} rows)")

        inserted_contacts, skipped = service.seed_contacts(db, contacts)
        click.echo(f"✓ Contacts seeded ({inserted_contacts} rows, {skipped} skipped)")
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('quota-status')
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--date', 'quota_date', required=False, help='Quota date (YYYY-MM-DD). Defaults to today')
def quota_status(user_id, quota_date):
    """Show contacts viewed by a user on a day"""
    day = _resolve_day(quota_date)
    if day is None:
        return
    try:
        store = _quota_store()
        count = store.get_count(user_id, day)
        marks = store.get_marks(user_id, day)
        click.echo(f"User {user_id} on {day}: {count}/{settings.daily_contact_limit} contacts viewed")
        if count != len(marks):
            click.echo(f"⚠ Counter ({count}) and marks ({len(marks)}) disagree; run reconcile-quota", err=True)
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)


@cli.command('reset-quota')
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--date', 'quota_date', required=False, help='Quota date (YYYY-MM-DD). Defaults to today')
@click.option('-y', '--yes', 'confirm', is_flag=True, help='Skip confirmation')
@click.option('--dry-run', 'dry_run', is_flag=True, help='Show what would be changed without committing')
def reset_quota(user_id, quota_date, confirm, dry_run):
    """Delete a user's contact-view counter and marks for a day"""
    day = _resolve_day(quota_date)
    if day is None:
        return
    action_desc = f"reset contact views for {user_id} on {day}"
    try:
        store = _quota_store()

        if dry_run:
            click.echo(f"🔍 Dry run: would {action_desc}")
            click.echo(f"Counter: {store.get_count(user_id, day)}, marks: {len(store.get_marks(user_id, day))}")
            return

        if not confirm:
            try:
                if not click.confirm(f"Are you sure you want to {action_desc}?", default=False):
                    click.echo("Aborted")
                    return
            except click.exceptions.Abort:
                click.echo("\nAborted")
                return

        store.reset(user_id, day)
        click.echo(f"✓ Reset contact views for {user_id} on {day}")
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)


@cli.command('reconcile-quota')
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--date', 'quota_date', required=False, help='Quota date (YYYY-MM-DD). Defaults to today')
def reconcile_quota(user_id, quota_date):
    """Rewrite a user's view counter from the recorded marks"""
    day = _resolve_day(quota_date)
    if day is None:
        return
    try:
        count = _quota_store().reconcile(user_id, day)
        click.echo(f"✓ Counter for {user_id} on {day} is {count}")
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)


if __name__ == '__main__':
    cli()
