# pollbuddy/voting/window.py

import logging
from datetime import datetime, timedelta
from enum import Enum

from pollbuddy import db
from pollbuddy.database.models import SINGLETON_ID, VotingPeriod, utcnow
from pollbuddy.errors import ValidationFailed, WindowClosed, WindowNotOpen, WindowNotSet

# The single voting period. Admin tooling replaces or clears it; ballots
# are accepted only while now lies in [start, end].

logger = logging.getLogger(__name__)

DEFAULT_DURATION_HOURS = 8
TOMORROW_START_HOUR = 9
QUICK_PRESETS = ('now', '1hour', 'tomorrow')


class WindowState(Enum):
    NOT_SET = "not_set"
    NOT_OPEN = "not_open"
    OPEN = "open"
    CLOSED = "closed"


class VotingWindowService:
    def __init__(self, audit_logger=None):
        self.audit_logger = audit_logger

    def _now(self):
        # extracted for easier monkeypatching in tests
        return utcnow()

    def get_window(self):
        return db.session.get(VotingPeriod, SINGLETON_ID)

    def set_window(self, start: datetime, end: datetime, actor=None) -> VotingPeriod:
        if start > end:
            raise ValidationFailed("Voting period must end after it starts.")
        period = db.session.merge(VotingPeriod(id=SINGLETON_ID, start_date=start, end_date=end))
        db.session.commit()
        logger.info(f"Voting period set: {start.isoformat()} -> {end.isoformat()}")
        if self.audit_logger is not None:
            self.audit_logger.record('voting_period_set',
                                     {'start': start.isoformat(), 'end': end.isoformat()}, actor=actor)
        return period

    def set_window_from(self, start: datetime, hours=DEFAULT_DURATION_HOURS, actor=None):
        return self.set_window(start, start + timedelta(hours=hours), actor=actor)

    def schedule(self, date_str, time_str, hours=DEFAULT_DURATION_HOURS, actor=None):
        """Set the window from a ``YYYY-MM-DD`` date and ``HH:MM`` UTC time."""
        try:
            start = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
        except ValueError:
            raise ValidationFailed("Use a date like 2024-05-20 and a time like 09:00.")
        if hours <= 0:
            raise ValidationFailed("Voting duration must be positive.")
        return self.set_window_from(start, hours, actor=actor)

    def quick_preset(self, preset, actor=None):
        now = self._now().replace(microsecond=0)
        if preset == 'now':
            start = now
        elif preset == '1hour':
            start = now + timedelta(hours=1)
        elif preset == 'tomorrow':
            start = (now + timedelta(days=1)).replace(hour=TOMORROW_START_HOUR, minute=0, second=0)
        else:
            raise ValidationFailed(f"Unknown preset: {preset}")
        return self.set_window_from(start, DEFAULT_DURATION_HOURS, actor=actor)

    def clear_window(self, actor=None) -> bool:
        deleted = db.session.query(VotingPeriod).filter(VotingPeriod.id == SINGLETON_ID).delete()
        db.session.commit()
        if deleted and self.audit_logger is not None:
            self.audit_logger.record('voting_period_cleared', {}, actor=actor)
        return bool(deleted)

    @staticmethod
    def _state_of(period, now):
        if period is None:
            return WindowState.NOT_SET
        if now < period.start_date:
            return WindowState.NOT_OPEN
        if now > period.end_date:
            return WindowState.CLOSED
        return WindowState.OPEN

    def status(self, now=None):
        return self._state_of(self.get_window(), now or self._now())

    def require_open(self):
        period = self.get_window()
        state = self._state_of(period, self._now())
        if state is WindowState.NOT_SET:
            raise WindowNotSet()
        if state is WindowState.NOT_OPEN:
            raise WindowNotOpen(f"Voting has not started yet.\n\nVoting starts: {period.start_date:%Y-%m-%d %H:%M} UTC")
        if state is WindowState.CLOSED:
            raise WindowClosed(f"Voting period has ended.\n\nVoting ended: {period.end_date:%Y-%m-%d %H:%M} UTC")
        return period

    def has_ended(self) -> bool:
        return self.status() is WindowState.CLOSED
