"""
Database initialization script
Run with: python init_db.py [--demo]
"""

import sys

from app import create_app
from models import db, Tournament, Team, Match


def seed_demo_data():
    """Add a sample tournament, two teams and a scheduled match to an empty database."""
    if Tournament.query.first() or Team.query.first():
        return False

    tournament = Tournament(name='Demo Cup')
    home = Team(name='Home Team')
    away = Team(name='Away Team')
    db.session.add_all([tournament, home, away])
    db.session.flush()

    db.session.add(
        Match(
            tournament_id=tournament.id,
            team_a_id=home.id,
            team_b_id=away.id,
            status='scheduled',
        )
    )
    db.session.commit()
    return True


def initialize_database(app=None, demo=False):
    """Initialize database tables and, optionally, demo data"""
    app = app or create_app({'LIVE_SYNC_AUTOSTART': False, 'REALTIME_ASYNC': False})
    with app.app_context():
        print("Creating database tables...")
        db.create_all()

        if demo:
            print("Adding demo data...")
            if not seed_demo_data():
                print("Database already has data, skipping demo records.")

        print("Database initialized successfully!")
    return app


if __name__ == "__main__":
    initialize_database(demo='--demo' in sys.argv[1:])
