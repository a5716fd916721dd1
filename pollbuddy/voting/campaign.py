# pollbuddy/voting/campaign.py

import logging
import threading
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from pollbuddy import db
from pollbuddy.database.models import SINGLETON_ID, Candidate, CampaignWindow, utcnow
from pollbuddy.errors import CampaignActive, NotFound, ValidationFailed
from pollbuddy.transport.telegram import TransportError

# One candidate campaigns at a time. The active slot is a persisted row
# with an absolute end time; reads end an expired slot, and a timer only
# delivers the on-time notification.

logger = logging.getLogger(__name__)

DEFAULT_CAMPAIGN_HOURS = 24


class CampaignService:
    def __init__(self, transport, app=None, campaign_chat_ids=None,
                 default_hours=DEFAULT_CAMPAIGN_HOURS, timer_factory=threading.Timer,
                 audit_logger=None):
        self.transport = transport
        self.app = app
        self.campaign_chat_ids = list(campaign_chat_ids or [])
        self.default_hours = default_hours
        self.timer_factory = timer_factory
        self.audit_logger = audit_logger
        self._timer = None
        self._lock = threading.Lock()

    def _now(self):
        # extracted for easier monkeypatching in tests
        return utcnow()

    def active_campaign(self):
        """The live campaign row, or None. An expired row is ended here."""
        campaign = db.session.get(CampaignWindow, SINGLETON_ID)
        if campaign is None:
            return None
        if self._now() >= campaign.ends_at:
            self.end_campaign()
            return None
        return campaign

    def start_campaign(self, candidate_id, duration_hours=None, actor=None) -> CampaignWindow:
        hours = duration_hours or self.default_hours
        if hours <= 0:
            raise ValidationFailed("Campaign duration must be positive.")
        if self.active_campaign() is not None:
            raise CampaignActive()

        candidate = db.session.get(Candidate, int(candidate_id))
        if candidate is None or not candidate.is_approved:
            raise NotFound("Candidate not found or not approved.")
        if not candidate.manifesto:
            raise ValidationFailed("Add a manifesto to your profile before campaigning.")

        now = self._now()
        campaign = CampaignWindow(
            id=SINGLETON_ID,
            candidate_id=candidate.candidate_id,
            started_at=now,
            ends_at=now + timedelta(hours=hours),
        )
        try:
            db.session.add(campaign)
            db.session.commit()
        except IntegrityError:
            # another start won the singleton row
            db.session.rollback()
            raise CampaignActive()

        logger.info(f"Campaign started for candidate {candidate.candidate_id} ({hours}h)")
        if self.audit_logger is not None:
            self.audit_logger.record('campaign_started',
                                     {'candidate_id': candidate.candidate_id, 'hours': hours}, actor=actor)
        self._broadcast(candidate)
        self._arm_timer(hours * 3600)
        return campaign

    def end_campaign(self) -> bool:
        """Close the active slot; the candidate is told exactly once."""
        self._cancel_timer()
        campaign = db.session.get(CampaignWindow, SINGLETON_ID)
        if campaign is None:
            return False
        telegram_id = campaign.candidate.telegram_id if campaign.candidate else None
        candidate_id = campaign.candidate_id

        deleted = db.session.query(CampaignWindow).filter(CampaignWindow.id == SINGLETON_ID).delete()
        db.session.commit()
        if deleted != 1:
            return False

        logger.info(f"Campaign ended for candidate {candidate_id}")
        if self.audit_logger is not None:
            self.audit_logger.record('campaign_ended', {'candidate_id': candidate_id})
        if telegram_id:
            self._notify(telegram_id,
                         "📢 Your campaign period has ended.\n\n"
                         "Thank you for participating in the NACOS election!")
        return True

    def reconcile(self):
        """End an expired slot, or re-arm the timer for a live one."""
        campaign = self.active_campaign()
        if campaign is not None:
            remaining = (campaign.ends_at - self._now()).total_seconds()
            self._arm_timer(max(remaining, 0))
        return campaign

    def status_text(self):
        campaign = self.active_campaign()
        if campaign is None:
            return "No active campaign"
        remaining = max((campaign.ends_at - self._now()).total_seconds(), 0)
        hours, minutes = int(remaining // 3600), int(remaining % 3600 // 60)
        return f"Active: {campaign.candidate.name} - {hours}h {minutes}m remaining"

    def _broadcast(self, candidate):
        caption = (
            f"📢 Campaign: {candidate.name}\n"
            f"Running for: {candidate.position}\n\n"
            f"📝 Manifesto:\n{candidate.manifesto}"
        )
        for chat_id in self.campaign_chat_ids:
            try:
                if candidate.picture:
                    self.transport.send_photo(chat_id, candidate.picture, caption)
                else:
                    self.transport.send_message(chat_id, caption)
            except TransportError as e:
                logger.warning(f"Campaign broadcast to {chat_id} failed: {e}")

    def _notify(self, chat_id, text):
        try:
            self.transport.send_message(chat_id, text)
        except TransportError as e:
            logger.warning(f"Could not notify {chat_id}: {e}")

    def _arm_timer(self, delay_seconds):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(delay_seconds, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def _cancel_timer(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _on_timer(self):
        with self._lock:
            self._timer = None
        if self.app is None:
            self.reconcile()
            return
        with self.app.app_context():
            self.reconcile()
