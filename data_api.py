"""Generic data access layer over the scoreboard tables.

Admin screens and the live overlay talk to persisted state only through
``DataAPI``: row queries returning plain dict records, insert/update/delete
by identity, and named change-notification channels per table.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import logging
import threading
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from models import db, Match, TABLES

logger = logging.getLogger(__name__)

NO_ROWS = 'no_rows'
INVALID = 'invalid'
NOT_FOUND = 'not_found'
BACKEND = 'backend'
CHANNEL = 'channel'

EVENT_INSERT = 'INSERT'
EVENT_UPDATE = 'UPDATE'
EVENT_DELETE = 'DELETE'

DEFAULT_EVENTS_PER_SECOND = 10


class DataAPIError(Exception):
    """Raised for any failed query, mutation or subscription."""

    def __init__(self, message: str, code: str = BACKEND):
        super().__init__(message)
        self.message = message
        self.code = code


class NoRowsError(DataAPIError):
    """Empty result for a single-row query. Not a failure of the backend."""

    def __init__(self, table: str):
        super().__init__(f'No rows returned from {table}', code=NO_ROWS)
        self.table = table


class ValidationError(DataAPIError):
    def __init__(self, message: str):
        super().__init__(message, code=INVALID)


class ChannelError(DataAPIError):
    def __init__(self, message: str):
        super().__init__(message, code=CHANNEL)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    record: Optional[dict] = None
    old_id: Optional[str] = None


@dataclass
class Subscription:
    name: str
    table: str
    callback: Callable[[ChangeEvent], None] = field(repr=False)
    active: bool = True


class RealtimeHub:
    """Process-wide registry of change-notification channels.

    Each channel name can be held by one subscriber at a time. Delivery is
    capped at ``events_per_second``; anything over the cap inside a one
    second window is dropped. With an ``executor`` the callbacks run on it,
    otherwise inline in the publishing thread.
    """

    def __init__(
        self,
        events_per_second: int = DEFAULT_EVENTS_PER_SECOND,
        executor=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.events_per_second = events_per_second
        self._executor = executor
        self._clock = clock
        self._lock = threading.Lock()
        self._channels: dict[str, Subscription] = {}
        self._recent: deque[float] = deque()

    def subscribe(self, name: str, table: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        if table not in TABLES:
            raise ChannelError(f'Unknown table: {table}')
        with self._lock:
            if name in self._channels:
                raise ChannelError(f'Channel {name!r} is already subscribed')
            subscription = Subscription(name=name, table=table, callback=callback)
            self._channels[name] = subscription
        logger.info('Subscribed channel %s to %s changes', name, table)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.active = False
            if self._channels.get(subscription.name) is subscription:
                del self._channels[subscription.name]
        logger.info('Removed channel %s', subscription.name)

    def channel_names(self) -> list[str]:
        with self._lock:
            return sorted(self._channels)

    def _admit(self) -> bool:
        now = self._clock()
        while self._recent and now - self._recent[0] >= 1.0:
            self._recent.popleft()
        if len(self._recent) >= self.events_per_second:
            return False
        self._recent.append(now)
        return True

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every channel watching its table.

        Returns the number of callbacks scheduled.
        """
        with self._lock:
            if not self._admit():
                logger.warning(
                    'Dropping %s event on %s: over %s events per second',
                    event.event_type, event.table, self.events_per_second,
                )
                return 0
            targets = [sub for sub in self._channels.values() if sub.table == event.table]

        for subscription in targets:
            if self._executor is not None:
                self._executor.submit(self._deliver, subscription, event)
            else:
                self._deliver(subscription, event)
        return len(targets)

    def _deliver(self, subscription: Subscription, event: ChangeEvent) -> None:
        if not subscription.active:
            return
        try:
            subscription.callback(event)
        except Exception:
            logger.exception('Change handler for channel %s failed', subscription.name)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)


class DataAPI:
    """Query, mutation and notification operations over the three tables.

    Every call runs inside its own application context so it can be used
    from request handlers and from background timer threads alike.
    """

    def __init__(self, app, hub: Optional[RealtimeHub] = None):
        self.app = app
        self.hub = hub or RealtimeHub()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        embed: bool = True,
    ) -> list[dict]:
        model = self._model(table)
        with self.app.app_context():
            try:
                query = model.query
                if model is Match and embed:
                    query = query.options(
                        joinedload(Match.tournament),
                        joinedload(Match.team_a),
                        joinedload(Match.team_b),
                    )
                for column_name, value in (filters or {}).items():
                    query = query.filter(self._column(model, column_name) == value)
                if order_by:
                    column = self._column(model, order_by)
                    query = query.order_by(column.desc() if descending else column.asc())
                if limit is not None:
                    query = query.limit(limit)
                return [row.to_record(embed=embed) for row in query.all()]
            except SQLAlchemyError as exc:
                raise DataAPIError(f'Query on {table} failed: {exc}') from exc

    def select_one(self, table: str, **kwargs) -> dict:
        """Single most relevant row, or ``NoRowsError`` if nothing matches."""
        kwargs['limit'] = 1
        rows = self.select(table, **kwargs)
        if not rows:
            raise NoRowsError(table)
        return rows[0]

    def get(self, table: str, record_id: str, embed: bool = True) -> dict:
        rows = self.select(table, filters={'id': record_id}, limit=1, embed=embed)
        if not rows:
            raise DataAPIError(f'{table} record {record_id} not found', code=NOT_FOUND)
        return rows[0]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def insert(self, table: str, values: dict) -> dict:
        model = self._model(table)
        with self.app.app_context():
            try:
                row = model(**self._clean(model, values))
                db.session.add(row)
                db.session.commit()
                record = row.to_record()
            except ValueError as exc:
                db.session.rollback()
                raise ValidationError(str(exc)) from exc
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise DataAPIError(f'Insert into {table} failed: {exc}') from exc
        self.hub.publish(ChangeEvent(table=table, event_type=EVENT_INSERT, record=record))
        return record

    def update(self, table: str, record_id: str, values: dict) -> dict:
        if not values.get('updated_at'):
            raise ValidationError('updated_at must be set on every update')
        model = self._model(table)
        cleaned = self._clean(model, values)
        with self.app.app_context():
            try:
                row = db.session.get(model, record_id)
                if row is None:
                    raise DataAPIError(f'{table} record {record_id} not found', code=NOT_FOUND)
                if model is Match and 'team_a_id' in cleaned and 'team_b_id' in cleaned:
                    # clear both sides first so swapping teams passes validation
                    row.team_a_id = None
                    row.team_b_id = None
                for key, value in cleaned.items():
                    setattr(row, key, value)
                db.session.commit()
                record = row.to_record()
            except ValueError as exc:
                db.session.rollback()
                raise ValidationError(str(exc)) from exc
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise DataAPIError(f'Update of {table} failed: {exc}') from exc
        self.hub.publish(ChangeEvent(table=table, event_type=EVENT_UPDATE, record=record))
        return record

    def delete(self, table: str, record_id: str) -> None:
        model = self._model(table)
        with self.app.app_context():
            try:
                row = db.session.get(model, record_id)
                if row is None:
                    raise DataAPIError(f'{table} record {record_id} not found', code=NOT_FOUND)
                db.session.delete(row)
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise DataAPIError(f'Delete from {table} failed: {exc}') from exc
        self.hub.publish(ChangeEvent(table=table, event_type=EVENT_DELETE, old_id=record_id))

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------
    def channel(self, name: str, table: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        return self.hub.subscribe(name, table, callback)

    def remove_channel(self, subscription: Subscription) -> None:
        self.hub.unsubscribe(subscription)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise DataAPIError(f'Unknown table: {table}', code=INVALID) from None

    def _column(self, model, name: str):
        if name not in model.__table__.columns:
            raise DataAPIError(f'Unknown column {name} on {model.__tablename__}', code=INVALID)
        return getattr(model, name)

    def _clean(self, model, values: dict) -> dict:
        columns = model.__table__.columns
        unknown = [key for key in values if key not in columns]
        if unknown:
            raise ValidationError(f"Unknown field(s) for {model.__tablename__}: {', '.join(sorted(unknown))}")
        return {key: value for key, value in values.items() if key != 'id'}
