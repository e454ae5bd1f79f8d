from datetime import datetime
import os
import uuid

import pytz

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates

db = SQLAlchemy()

APP_TIMEZONE = pytz.timezone(os.environ.get('APP_TIMEZONE', 'UTC'))

MATCH_STATUSES = ('scheduled', 'live', 'finished')
STATUS_LABELS = {
    'scheduled': 'Scheduled',
    'live': 'Live',
    'finished': 'Finished',
}


def current_time():
    return datetime.now(APP_TIMEZONE)


def _new_id() -> str:
    return str(uuid.uuid4())


def _isoformat(value):
    return value.isoformat() if value else None


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(120), nullable=False)
    logo_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time)

    matches = db.relationship('Match', back_populates='tournament', lazy=True)

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Tournament {self.id} {self.name}>"

    @validates('name')
    def validate_name(self, key, value):
        if not value or not value.strip():
            raise ValueError('Tournament name is required')
        return value.strip()

    def display_fields(self) -> dict:
        return {'name': self.name, 'logo_url': self.logo_url}

    def to_record(self, embed: bool = True) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'logo_url': self.logo_url,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }


class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(120), nullable=False)
    logo_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time)

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Team {self.id} {self.name}>"

    @validates('name')
    def validate_name(self, key, value):
        if not value or not value.strip():
            raise ValueError('Team name is required')
        return value.strip()

    def display_fields(self) -> dict:
        return {'name': self.name, 'logo_url': self.logo_url}

    def to_record(self, embed: bool = True) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'logo_url': self.logo_url,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }


class Match(db.Model):
    """A fixture between two teams, optionally inside a tournament.

    Team and tournament references are weak: deleting a team or tournament
    leaves the match in place with the reference cleared.
    """

    __tablename__ = 'matches'
    __table_args__ = (
        db.CheckConstraint('team_a_score >= 0', name='ck_matches_team_a_score'),
        db.CheckConstraint('team_b_score >= 0', name='ck_matches_team_b_score'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    tournament_id = db.Column(
        db.String(36), db.ForeignKey('tournaments.id', ondelete='SET NULL')
    )
    team_a_id = db.Column(db.String(36), db.ForeignKey('teams.id', ondelete='SET NULL'))
    team_b_id = db.Column(db.String(36), db.ForeignKey('teams.id', ondelete='SET NULL'))
    team_a_score = db.Column(db.Integer, nullable=False, default=0)
    team_b_score = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='scheduled')  # scheduled, live, finished
    match_date = db.Column(db.DateTime, default=current_time)
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time)

    tournament = db.relationship('Tournament', back_populates='matches')
    team_a = db.relationship('Team', foreign_keys=[team_a_id])
    team_b = db.relationship('Team', foreign_keys=[team_b_id])

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Match {self.id} {self.status} {self.team_a_score}-{self.team_b_score}>"

    @validates('status')
    def validate_status(self, key, value):
        if value not in MATCH_STATUSES:
            raise ValueError(f'Invalid match status: {value}')
        return value

    @validates('team_a_score', 'team_b_score')
    def validate_score(self, key, value):
        if value is None:
            return 0
        value = int(value)
        if value < 0:
            raise ValueError('Scores cannot be negative')
        return value

    @validates('team_a_id', 'team_b_id')
    def validate_distinct_teams(self, key, value):
        other = self.team_b_id if key == 'team_a_id' else self.team_a_id
        if value and other and value == other:
            raise ValueError('A match needs two different teams')
        return value or None

    @property
    def is_live(self):
        return self.status == 'live'

    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, STATUS_LABELS['scheduled'])

    def to_record(self, embed: bool = True) -> dict:
        record = {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'team_a_id': self.team_a_id,
            'team_b_id': self.team_b_id,
            'team_a_score': self.team_a_score,
            'team_b_score': self.team_b_score,
            'status': self.status,
            'match_date': _isoformat(self.match_date),
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }
        if embed:
            record['tournament'] = self.tournament.display_fields() if self.tournament else None
            record['team_a'] = self.team_a.display_fields() if self.team_a else None
            record['team_b'] = self.team_b.display_fields() if self.team_b else None
        return record


TABLES = {
    'tournaments': Tournament,
    'teams': Team,
    'matches': Match,
}
