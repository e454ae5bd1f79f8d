import pytest
from datetime import datetime, timedelta

from app import create_app
from data_api import DataAPI, RealtimeHub, NoRowsError
from live_sync import LiveMatchSynchronizer
from models import db, Tournament, Team, Match

BASE_TIME = datetime(2024, 3, 14, 18, 0, 0)


@pytest.fixture
def flask_app():
    """Create test application with in-memory SQLite database"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret-key',
        'LIVE_SYNC_AUTOSTART': False,
        'REALTIME_ASYNC': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(flask_app):
    """Test client"""
    return flask_app.test_client()


@pytest.fixture
def data_api(flask_app):
    return flask_app.extensions['data_api']


@pytest.fixture
def tournament(flask_app):
    tournament = Tournament(name='Test Tournament', logo_url='https://example.com/cup.png')
    db.session.add(tournament)
    db.session.commit()
    return tournament


@pytest.fixture
def team(flask_app):
    team = Team(name='Test Team', logo_url='https://example.com/a.png')
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture
def team2(flask_app):
    team = Team(name='Second Team')
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture
def make_match(flask_app, tournament, team, team2):
    """Factory for matches with explicit update timestamps"""

    def _make(status='scheduled', team_a_score=0, team_b_score=0, minutes=0):
        stamp = BASE_TIME + timedelta(minutes=minutes)
        match = Match(
            tournament_id=tournament.id,
            team_a_id=team.id,
            team_b_id=team2.id,
            team_a_score=team_a_score,
            team_b_score=team_b_score,
            status=status,
            match_date=stamp,
            created_at=stamp,
            updated_at=stamp,
        )
        db.session.add(match)
        db.session.commit()
        return match

    return _make


@pytest.fixture
def match(make_match):
    """A scheduled match between the two test teams"""
    return make_match()


class FakeClock:
    """Monotonic clock the test moves by hand"""

    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeWallClock:
    """Wall clock that ticks one second per reading"""

    def __init__(self):
        self.current = BASE_TIME

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


class FakeTimer:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.callback()


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def latest(self):
        return self.timers[-1] if self.timers else None

    def active(self):
        return [timer for timer in self.timers if timer.started and not timer.cancelled]


class StubDataAPI:
    """Stands in for DataAPI with scripted query results.

    ``live`` and ``recent`` are the rows returned by the live and the
    any-status queries; ``fail`` is raised instead when set. ``during_fetch``
    runs inside the live query to simulate triggers arriving mid-flight.
    """

    def __init__(self):
        self.hub = RealtimeHub()
        self.live = None
        self.recent = None
        self.fail = None
        self.during_fetch = None
        self.fetches = 0

    def select_one(self, table, filters=None, **kwargs):
        if filters and filters.get('status') == 'live':
            self.fetches += 1
            if self.during_fetch:
                self.during_fetch()
            if self.fail:
                raise self.fail
            row = self.live
        else:
            row = self.recent
        if row is None:
            raise NoRowsError(table)
        return dict(row)

    def channel(self, name, table, callback):
        return self.hub.subscribe(name, table, callback)

    def remove_channel(self, subscription):
        self.hub.unsubscribe(subscription)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def stub_api():
    return StubDataAPI()


@pytest.fixture
def make_synchronizer(clock, wall_clock, timers):
    created = []

    def _make(api, **kwargs):
        synchronizer = LiveMatchSynchronizer(
            api,
            clock=clock,
            wall_clock=wall_clock,
            timer_factory=timers,
            **kwargs,
        )
        created.append(synchronizer)
        return synchronizer

    yield _make
    for synchronizer in created:
        synchronizer.unmount()


@pytest.fixture
def hub_clock():
    return FakeClock()


@pytest.fixture
def limited_api(flask_app, hub_clock):
    """DataAPI whose realtime hub uses a controllable clock"""
    hub = RealtimeHub(events_per_second=3, clock=hub_clock)
    return DataAPI(flask_app, hub)
