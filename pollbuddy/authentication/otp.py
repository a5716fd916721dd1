# pollbuddy/authentication/otp.py

import hmac
import logging
import secrets
from datetime import timedelta
from enum import Enum

from pollbuddy import db
from pollbuddy.database.models import AdminOTP, CandidateOTP, VoterOTP, utcnow
from pollbuddy.errors import CodeExpired, CodeMismatch, DeliveryFailed, NoPendingCode

# Email one-time codes: issue, deliver, verify once.

logger = logging.getLogger(__name__)

CODE_DIGITS = 6


class OTPFlow(Enum):
    VOTER = "voter"
    CANDIDATE = "candidate"
    ADMIN = "admin"


FLOW_MODELS = {
    OTPFlow.VOTER: VoterOTP,
    OTPFlow.CANDIDATE: CandidateOTP,
    OTPFlow.ADMIN: AdminOTP,
}

# Order in which a bare 6-digit reply is matched against live codes
CONSUMPTION_ORDER = [OTPFlow.VOTER, OTPFlow.CANDIDATE]


class OneTimeCodeService:
    def __init__(self, mailer=None, ttl_minutes=5, audit_logger=None):
        self.mailer = mailer
        self.ttl = timedelta(minutes=ttl_minutes)
        self.audit_logger = audit_logger

    def _now(self):
        # extracted for easier monkeypatching in tests
        return utcnow()

    def generate_code(self) -> str:
        """Uniformly random 6-digit decimal string."""
        return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"

    def issue(self, telegram_id, flow, email=None) -> str:
        """Store a fresh code for (user, flow), replacing any live one.

        When ``email`` is given the code is mailed; if delivery fails the
        code is withdrawn and DeliveryFailed is raised.
        """
        flow = OTPFlow(flow)
        model = FLOW_MODELS[flow]
        code = self.generate_code()
        db.session.merge(model(
            telegram_id=str(telegram_id),
            code=code,
            expires_at=self._now() + self.ttl,
        ))
        db.session.commit()

        if email is not None and self.mailer is not None:
            sent = self.mailer.send_otp(email, code, int(self.ttl.total_seconds() // 60))
            if not sent:
                self.discard(telegram_id, flow)
                raise DeliveryFailed()
        logger.info(f"Issued {flow.value} code for {telegram_id}")
        return code

    def verify(self, telegram_id, flow, submitted) -> bool:
        """Consume the live code; raises on missing, expired or wrong codes."""
        flow = OTPFlow(flow)
        model = FLOW_MODELS[flow]
        telegram_id = str(telegram_id)
        submitted = (submitted or '').strip()

        record = db.session.get(model, telegram_id)
        if record is None:
            raise NoPendingCode()

        if self._now() > record.expires_at:
            db.session.delete(record)
            db.session.commit()
            self._audit('otp_expired', telegram_id, flow)
            raise CodeExpired()

        if not hmac.compare_digest(record.code.encode(), submitted.encode()):
            self._audit('otp_mismatch', telegram_id, flow)
            raise CodeMismatch()

        # Conditional delete: a concurrent submission of the same code
        # finds nothing left to delete.
        deleted = (
            db.session.query(model)
            .filter(model.telegram_id == telegram_id, model.code == submitted)
            .delete()
        )
        db.session.commit()
        if deleted != 1:
            raise CodeMismatch()
        self._audit('otp_verified', telegram_id, flow)
        return True

    def has_pending(self, telegram_id, flow) -> bool:
        model = FLOW_MODELS[OTPFlow(flow)]
        return db.session.get(model, str(telegram_id)) is not None

    def pending_flow(self, telegram_id):
        """First flow, in consumption order, holding a code for the user."""
        for flow in CONSUMPTION_ORDER:
            if self.has_pending(telegram_id, flow):
                return flow
        return None

    def discard(self, telegram_id, flow):
        model = FLOW_MODELS[OTPFlow(flow)]
        db.session.query(model).filter(model.telegram_id == str(telegram_id)).delete()
        db.session.commit()

    def _audit(self, event, telegram_id, flow):
        if self.audit_logger is not None:
            self.audit_logger.record(event, {'flow': flow.value}, actor=telegram_id)
