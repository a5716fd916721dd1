# pollbuddy/candidates/lifecycle.py

import logging

from sqlalchemy.exc import IntegrityError

from pollbuddy import db
from pollbuddy.authentication.otp import OTPFlow
from pollbuddy.database.models import Candidate, CandidateOTP, User
from pollbuddy.errors import CodeExpired, NotFound, NotVerified, UniquenessConflict, ValidationFailed

# Candidacy lifecycle: application with email confirmation, admin
# approval or rejection, then profile completion (photo, manifesto).

logger = logging.getLogger(__name__)


class CandidateService:
    def __init__(self, otp_service, validator, audit_logger=None):
        self.otp_service = otp_service
        self.validator = validator
        self.audit_logger = audit_logger

    def get_candidate(self, telegram_id):
        return (
            db.session.query(Candidate)
            .filter_by(telegram_id=str(telegram_id))
            .order_by(Candidate.candidate_id)
            .first()
        )

    def get_by_id(self, candidate_id):
        return db.session.get(Candidate, int(candidate_id))

    def _pending(self, telegram_id):
        return (
            db.session.query(Candidate)
            .filter_by(telegram_id=str(telegram_id), is_approved=False)
            .first()
        )

    def list_pending(self):
        return db.session.query(Candidate).filter_by(is_approved=False).order_by(Candidate.candidate_id).all()

    def list_approved(self):
        return (
            db.session.query(Candidate)
            .filter_by(is_approved=True)
            .order_by(Candidate.position, Candidate.candidate_id)
            .all()
        )

    def check_can_apply(self, telegram_id):
        """Verified, eligible and not yet a candidate; returns the user and
        the positions open to them."""
        user = db.session.get(User, str(telegram_id))
        if user is None or not user.is_verified:
            raise NotVerified("You must be registered and verified first.\n\nUse /register to get started.")

        if not self.validator.validate_candidate_level(user.level):
            raise ValidationFailed("Only students in levels 200-400 can apply as candidates.")
        if not self.validator.matric_validator.is_valid_member(user.matric_no):
            raise ValidationFailed("Only students from CG and CH departments can apply as candidates.")

        if self.get_candidate(telegram_id) is not None:
            raise UniquenessConflict("You have already applied as a candidate.\n\nPlease wait for admin approval.")

        positions = self.validator.eligible_positions(user.level)
        if not positions:
            raise ValidationFailed("No positions available for your level.")
        return user, positions

    def apply(self, telegram_id, position) -> Candidate:
        """Create an unapproved candidacy and mail a confirmation code."""
        user, _ = self.check_can_apply(telegram_id)
        if not self.validator.is_valid_position(position):
            raise ValidationFailed(f"Unknown position: {position}")

        eligibility = self.validator.can_apply_for_position(user.matric_no, position, user.level)
        if not eligibility['can_apply']:
            raise ValidationFailed(eligibility['reason'])

        candidate = Candidate(telegram_id=user.telegram_id, name=user.name, position=position, is_approved=False)
        try:
            db.session.add(candidate)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise UniquenessConflict(f"You have already applied for {position}.")

        try:
            self.otp_service.issue(user.telegram_id, OTPFlow.CANDIDATE, email=user.email)
        except Exception:
            # no undeliverable application left behind
            db.session.rollback()
            db.session.delete(candidate)
            db.session.commit()
            raise

        logger.info(f"Candidate application {candidate.candidate_id} for {position}")
        self._audit('candidate_applied', {'position': position}, user.telegram_id)
        return candidate

    def confirm_application(self, telegram_id, code) -> Candidate:
        """Consume the candidate code; the application then awaits approval.

        An expired code withdraws the unconfirmed application so the user
        can apply again.
        """
        try:
            self.otp_service.verify(telegram_id, OTPFlow.CANDIDATE, code)
        except CodeExpired:
            db.session.query(Candidate).filter(
                Candidate.telegram_id == str(telegram_id), Candidate.is_approved.is_(False)).delete()
            db.session.commit()
            raise CodeExpired("Your OTP has expired. Please apply again.")
        candidate = self._pending(telegram_id)
        if candidate is None:
            raise NotFound("Candidate application not found.")
        return candidate

    def approve(self, telegram_id, actor=None) -> Candidate:
        candidate = self._pending(telegram_id)
        if candidate is None:
            raise NotFound("Candidate not found.")
        # only the first of two concurrent approvals flips the flag
        updated = (
            db.session.query(Candidate)
            .filter(Candidate.candidate_id == candidate.candidate_id, Candidate.is_approved.is_(False))
            .update({Candidate.is_approved: True}, synchronize_session=False)
        )
        db.session.commit()
        if updated != 1:
            raise NotFound("Candidate not found.")
        db.session.refresh(candidate)
        self._audit('candidate_approved', {'candidate_id': candidate.candidate_id}, actor)
        return candidate

    def reject(self, telegram_id, actor=None) -> dict:
        """Delete the pending application; returns what was removed."""
        candidate = self._pending(telegram_id)
        if candidate is None:
            raise NotFound("Candidate not found.")
        removed = {
            'candidate_id': candidate.candidate_id,
            'telegram_id': candidate.telegram_id,
            'name': candidate.name,
            'position': candidate.position,
        }
        db.session.delete(candidate)
        db.session.query(CandidateOTP).filter(CandidateOTP.telegram_id == str(telegram_id)).delete()
        db.session.commit()
        self._audit('candidate_rejected', {'candidate_id': removed['candidate_id']}, actor)
        return removed

    def _require_candidate(self, telegram_id):
        candidate = self.get_candidate(telegram_id)
        if candidate is None:
            raise NotFound("Candidate profile not found.")
        return candidate

    def set_photo(self, telegram_id, photo_ref) -> Candidate:
        candidate = self._require_candidate(telegram_id)
        if not photo_ref:
            raise ValidationFailed("Please send a photo.")
        candidate.picture = str(photo_ref)
        db.session.commit()
        return candidate

    def set_manifesto(self, telegram_id, text) -> Candidate:
        candidate = self._require_candidate(telegram_id)
        if not self.validator.validate_manifesto(text):
            raise ValidationFailed("Manifesto too long. Please keep it under 500 characters.")
        manifesto = self.validator.sanitize_string(text, max_length=500)
        if not manifesto:
            raise ValidationFailed("Manifesto cannot be empty.")
        candidate.manifesto = manifesto
        db.session.commit()
        return candidate

    def _audit(self, event, data, telegram_id):
        if self.audit_logger is not None:
            self.audit_logger.record(event, data, actor=telegram_id)
