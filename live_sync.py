"""Live match synchronization for the broadcast overlay.

``LiveMatchSynchronizer`` keeps one cached "current match" fresh by
combining a polling timer with change notifications from the data layer.
Every trigger (timer tick, notification, explicit refetch, visibility
restore) goes through ``_fetch``, which admits at most one fetch at a time
and no more than one fetch start per ``min_fetch_interval``. Rejected
triggers are dropped, not queued.
"""

from dataclasses import dataclass
from typing import Callable, Optional
import logging
import threading
import time

from data_api import DataAPI, NoRowsError
from models import current_time

logger = logging.getLogger(__name__)

DEFAULT_POLLING_INTERVAL = 2.0
MIN_FETCH_INTERVAL = 1.0
CHANNEL_NAME = 'matches-realtime'
FETCH_ERROR_MESSAGE = 'Unable to load match data'

# Overlay views that stop checking in for this long no longer count as visible.
VIEWER_TIMEOUT = 10.0
DEFAULT_VIEWER = 'default'

# Fields that decide whether a freshly fetched match replaces the cached one.
CHANGE_FIELDS = ('id', 'team_a_score', 'team_b_score', 'status', 'updated_at')

UNINITIALIZED = 'uninitialized'
LOADING_INITIAL = 'loading-initial'
READY_OK = 'ready-ok'
READY_ERROR = 'ready-error'
CLOSED = 'closed'


def match_changed(previous: Optional[dict], fetched: Optional[dict]) -> bool:
    if previous is None or fetched is None:
        return previous is not fetched
    return any(previous.get(name) != fetched.get(name) for name in CHANGE_FIELDS)


def select_current_match(data_api: DataAPI) -> Optional[dict]:
    """Most recently updated live match, else most recently updated match."""
    try:
        return data_api.select_one(
            'matches', filters={'status': 'live'}, order_by='updated_at', descending=True
        )
    except NoRowsError:
        pass

    try:
        return data_api.select_one('matches', order_by='updated_at', descending=True)
    except NoRowsError:
        return None


class RepeatingTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name='live-sync-poll', daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stopped.set()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            self.callback()


@dataclass(frozen=True)
class SyncState:
    current_match: Optional[dict]
    is_loading: bool
    error: Optional[str]
    last_updated: Optional[str]
    phase: str
    polling: bool

    def to_dict(self) -> dict:
        return {
            'current_match': self.current_match,
            'is_loading': self.is_loading,
            'error': self.error,
            'last_updated': self.last_updated,
            'phase': self.phase,
            'polling': self.polling,
        }


class LiveMatchSynchronizer:
    def __init__(
        self,
        data_api: DataAPI,
        polling_interval: float = DEFAULT_POLLING_INTERVAL,
        min_fetch_interval: float = MIN_FETCH_INTERVAL,
        enable_realtime: bool = True,
        channel_name: str = CHANNEL_NAME,
        viewer_timeout: float = VIEWER_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable = current_time,
        timer_factory: Callable[[float, Callable[[], None]], object] = RepeatingTimer,
    ):
        self.data_api = data_api
        self.polling_interval = polling_interval
        self.min_fetch_interval = min_fetch_interval
        self.enable_realtime = enable_realtime
        self.channel_name = channel_name
        self.viewer_timeout = viewer_timeout
        self._clock = clock
        self._wall_clock = wall_clock
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._timer = None
        self._subscription = None
        self._in_flight = False
        self._last_fetch_started: Optional[float] = None
        self._first_fetch_done = False
        self._viewers: dict[str, float] = {}

        self._current_match: Optional[dict] = None
        self._is_loading = False
        self._error: Optional[str] = None
        self._last_updated: Optional[str] = None
        self._phase = UNINITIALIZED

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<LiveMatchSynchronizer phase={self._phase} polling={self._timer is not None}>"

    # ------------------------------------------------------------------
    # Consumer contract
    # ------------------------------------------------------------------
    @property
    def current_match(self) -> Optional[dict]:
        return self._current_match

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def last_updated(self) -> Optional[str]:
        return self._last_updated

    @property
    def phase(self) -> str:
        return self._phase

    @property
    def is_polling(self) -> bool:
        return self._timer is not None

    def state(self) -> SyncState:
        with self._lock:
            return SyncState(
                current_match=self._current_match,
                is_loading=self._is_loading,
                error=self._error,
                last_updated=self._last_updated,
                phase=self._phase,
                polling=self._timer is not None,
            )

    def refetch(self) -> bool:
        """Force a fetch through the throttled entry point."""
        return self._fetch(show_loading=True)

    def start_polling(self) -> None:
        with self._lock:
            if self._timer is not None or self._phase in (UNINITIALIZED, CLOSED):
                return
            self._timer = self._timer_factory(self.polling_interval, self._on_tick)
            timer = self._timer
        timer.start()

    def stop_polling(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def mount(self) -> None:
        """Subscribe, issue the initial fetch and start polling."""
        if self._phase != UNINITIALIZED:
            return
        if self.enable_realtime:
            # raises ChannelError if another instance already holds the channel
            self._subscription = self.data_api.channel(self.channel_name, 'matches', self._on_change)

        with self._lock:
            self._phase = LOADING_INITIAL
            self._is_loading = True
        logger.info('Live match synchronizer mounted (polling every %ss)', self.polling_interval)

        self._fetch(show_loading=True)
        self.start_polling()

    def unmount(self) -> None:
        """Release the timer and channel. A fetch still in flight is discarded."""
        with self._lock:
            if self._phase == CLOSED:
                return
            self._phase = CLOSED
            self._viewers.clear()
            subscription, self._subscription = self._subscription, None
        self.stop_polling()
        if subscription is not None:
            self.data_api.remove_channel(subscription)
        logger.info('Live match synchronizer unmounted')

    def set_visible(self, visible: bool, viewer: str = DEFAULT_VIEWER) -> None:
        """Record one overlay view's visibility.

        Polling is suspended once no view reports itself visible. A view
        becoming visible issues an immediate fetch and resumes polling.
        """
        if self._phase in (UNINITIALIZED, CLOSED):
            return
        with self._lock:
            self._prune_viewers()
            if visible:
                self._viewers[viewer] = self._clock()
            else:
                self._viewers.pop(viewer, None)
            any_visible = bool(self._viewers)

        if not any_visible:
            logger.info('No visible overlay views, suspending polling')
            self.stop_polling()
            return
        if visible:
            self._fetch()
        self.start_polling()

    def touch_viewer(self, viewer: str) -> None:
        """Keep ``viewer`` counted as visible; re-register it if it had expired."""
        with self._lock:
            known = viewer in self._viewers
            if known:
                self._viewers[viewer] = self._clock()
        if not known:
            self.set_visible(True, viewer)

    @property
    def visible_viewers(self) -> list[str]:
        with self._lock:
            return sorted(self._viewers)

    def _prune_viewers(self) -> None:
        now = self._clock()
        expired = [name for name, seen in self._viewers.items() if now - seen > self.viewer_timeout]
        for name in expired:
            del self._viewers[name]

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def _on_tick(self) -> None:
        self._fetch()

    def _on_change(self, event) -> None:
        logger.debug('Realtime %s on %s', event.event_type, event.table)
        self._fetch()

    def _fetch(self, show_loading: bool = False) -> bool:
        """Run one fetch unless another is in flight or one started too recently.

        Returns ``True`` when a fetch was actually issued.
        """
        with self._lock:
            if self._phase in (UNINITIALIZED, CLOSED) or self._in_flight:
                return False
            now = self._clock()
            if (
                self._last_fetch_started is not None
                and now - self._last_fetch_started < self.min_fetch_interval
            ):
                return False
            self._in_flight = True
            self._last_fetch_started = now
            if show_loading and not self._first_fetch_done:
                self._is_loading = True

        try:
            fetched = select_current_match(self.data_api)
        except Exception:
            logger.warning('Failed to fetch current match', exc_info=True)
            with self._lock:
                if self._phase != CLOSED:
                    self._error = FETCH_ERROR_MESSAGE
                    self._phase = READY_ERROR
        else:
            with self._lock:
                if self._phase != CLOSED:
                    self._apply(fetched)
                    self._error = None
                    self._phase = READY_OK
        finally:
            with self._lock:
                self._in_flight = False
                if self._phase != CLOSED:
                    self._first_fetch_done = True
                    self._is_loading = False
        return True

    def _apply(self, fetched: Optional[dict]) -> None:
        if match_changed(self._current_match, fetched):
            self._current_match = fetched
            self._last_updated = self._wall_clock().isoformat()
