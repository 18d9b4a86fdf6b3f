#!/usr/bin/env python3
"""
Football Pool Management CLI

Command-line management for the football pool: ESPN sync, the event cache,
weeks, users and the database.
"""

import logging
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from football_pool import create_app, db
from football_pool.errors import PoolError
from football_pool.models import Game, Pick, Result, User
from football_pool.utils.timezone_utils import week_date_range

app = create_app(start_sync=False)


def get_store():
    return current_app.extensions["store"]


def get_sync_service():
    return current_app.extensions["sync_service"]


@click.group()
def cli():
    """Football Pool Management CLI"""
    pass


# Sync Commands
@cli.group()
def sync():
    """ESPN sync commands"""
    pass


@sync.command()
@with_appcontext
def now():
    """Sync the current week"""
    success, message = get_sync_service().force_sync()
    click.echo(f"{'✅' if success else '❌'} {message}")


@sync.command()
@click.argument("season", type=int)
@click.argument("week", type=int)
@with_appcontext
def week(season, week):
    """Sync a specific SEASON and WEEK"""
    success, message = get_sync_service().force_sync(season=season, week=week)
    click.echo(f"{'✅' if success else '❌'} {message}")


@sync.command()
@with_appcontext
def backfill():
    """Sync every week of the configured season that has no games"""
    synced = get_sync_service().backfill()
    if synced:
        click.echo(f"✅ Backfilled weeks: {', '.join(str(w) for w in synced)}")
    else:
        click.echo("✅ Nothing to backfill")


@sync.command()
@click.argument("season", type=int)
@click.argument("week", type=int)
@with_appcontext
def spreads(season, week):
    """Refresh spreads for SEASON and WEEK from The Odds API"""
    odds_service = current_app.extensions["odds_service"]
    try:
        updated = odds_service.update_game_spreads(season, week)
    except PoolError as e:
        click.echo(f"❌ Spread refresh failed: {e}")
        return
    click.echo(f"✅ Updated spreads for {updated} games")


# Event Cache Commands
@cli.group()
def cache():
    """ESPN event cache commands"""
    pass


@cache.command()
@with_appcontext
def clear_expired():
    """Remove expired cache files"""
    removed = get_sync_service().cache.clear_expired()
    click.echo(f"✅ Removed {removed} expired cache files")


@cache.command()
@with_appcontext
def clear_all():
    """Remove every cache file"""
    removed = get_sync_service().cache.clear_all()
    click.echo(f"✅ Removed {removed} cache files")


# Week Management Commands
@cli.group(name="week")
def week_cmd():
    """Week management commands"""
    pass


@week_cmd.command()
@click.argument("week_number", type=int)
@click.option("--season", type=int, help="Season year (default: configured season)")
@click.option("--activate", is_flag=True, help="Activate this week")
@with_appcontext
def create(week_number, season, activate):
    """Create WEEK_NUMBER with a 7-day window from the Week 1 date"""
    season = season or current_app.config["ESPN_SEASON_YEAR"]
    start, end = week_date_range(current_app.config["ESPN_WEEK1_DATE"], week_number)
    store = get_store()

    try:
        week = store.create_week(week_number, season, start, end - timedelta(seconds=1))
        click.echo(
            f"✅ Created week {week_number} of {season} "
            f"({start:%Y-%m-%d} to {end:%Y-%m-%d})"
        )
        if activate:
            store.activate_week(week.id)
            click.echo(f"✅ Activated week {week_number}")
    except PoolError as e:
        click.echo(f"❌ {e}")
        logging.error(f"Week creation failed: {e}")


@week_cmd.command()
@click.argument("week_id", type=int)
@with_appcontext
def activate(week_id):
    """Activate WEEK_ID and deactivate every other week"""
    try:
        week = get_store().activate_week(week_id)
    except PoolError as e:
        click.echo(f"❌ {e}")
        return
    click.echo(f"✅ Activated week {week.week_number} of {week.season}")


@week_cmd.command(name="list")
@click.option("--season", type=int, help="Only weeks of this season")
@with_appcontext
def list_weeks(season):
    """List weeks"""
    weeks = get_store().list_weeks(season=season)
    if not weeks:
        click.echo("No weeks found")
        return

    for week in weeks:
        marker = "🟢" if week.is_active else "  "
        click.echo(
            f"{marker} [{week.id}] {week.season} week {week.week_number}: "
            f"{week.week_start_time:%Y-%m-%d} to {week.week_end_time:%Y-%m-%d}"
        )


# User Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command(name="create")
@click.argument("name")
@click.argument("email")
@click.option("--admin", is_flag=True, help="Give the user the admin role")
@with_appcontext
def create_user(name, email, admin):
    """Create a user; credentials are managed by the auth service"""
    try:
        user = get_store().create_user(name, email, role="admin" if admin else "user")
    except PoolError as e:
        click.echo(f"❌ {e}")
        return
    click.echo(f"✅ Created {user.role} {user.name} <{user.email}> (id {user.id})")


@user.command(name="list")
@with_appcontext
def list_users():
    """List users"""
    for user in User.query.order_by(User.id).all():
        click.echo(f"[{user.id}] {user.name} <{user.email}> {user.role}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏈 Football Pool Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    sync_status = get_sync_service().get_status()
    season, current = sync_status["season"], sync_status["current_week"]
    click.echo(f"📅 Season: {season} (Week {current})")
    click.echo(f"🔄 ESPN sync: {'enabled' if sync_status['enabled'] else 'disabled'}")

    active = get_store().get_active_week()
    if active:
        click.echo(f"✅ Active week: {active.week_number}")
    else:
        click.echo("⚠️  Active week: None")

    click.echo(f"👥 Users: {User.query.count()}")

    game_count = Game.query.filter_by(season=season).count()
    graded = Result.query.join(Game).filter(Game.season == season).count()
    click.echo(f"🏈 Games: {graded}/{game_count} graded")
    click.echo(f"📝 Picks: {Pick.query.count()}")


if __name__ == "__main__":
    with app.app_context():
        cli()
