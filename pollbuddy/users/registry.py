# pollbuddy/users/registry.py

import logging
from collections import Counter

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError

from pollbuddy import db
from pollbuddy.database.models import (
    AdminOTP, CampaignWindow, Candidate, CandidateOTP, User, UserState, Vote, VoterOTP,
)
from pollbuddy.errors import NotFound, UniquenessConflict, ValidationFailed

# Registered users: placeholder creation, completion of the registration
# wizard, admin role management, removal and reporting.

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "temp_name"


def placeholder_email(telegram_id):
    return f"temp_{telegram_id}@temp.invalid"


def placeholder_matric(telegram_id):
    return f"temp{telegram_id}"


class UserService:
    def __init__(self, matric_validator, authorizer=None, audit_logger=None):
        self.matric_validator = matric_validator
        self.authorizer = authorizer
        self.audit_logger = audit_logger

    def get(self, telegram_id):
        return db.session.get(User, str(telegram_id))

    def require(self, telegram_id):
        user = self.get(telegram_id)
        if user is None:
            raise NotFound(f"User {telegram_id} not found.")
        return user

    def is_verified(self, telegram_id) -> bool:
        user = self.get(telegram_id)
        return bool(user and user.is_verified)

    def start_registration(self, telegram_id) -> User:
        """Create (or reset) the unverified placeholder row for a new registrant."""
        telegram_id = str(telegram_id)
        user = db.session.merge(User(
            telegram_id=telegram_id,
            name=PLACEHOLDER_NAME,
            email=placeholder_email(telegram_id),
            matric_no=placeholder_matric(telegram_id),
            level=100,
            is_verified=False,
            is_admin=False,
        ))
        db.session.commit()
        return user

    def check_matric_available(self, telegram_id, matric) -> str:
        """Normalized matric number, if no other user holds it."""
        clean = self.matric_validator.normalize(matric)
        taken = (
            db.session.query(User.telegram_id)
            .filter(User.matric_no == clean, User.telegram_id != str(telegram_id))
            .first()
        )
        if taken is not None:
            raise UniquenessConflict("This matric number is already registered.\n\nContact admin if this is an error.")
        return clean

    def check_email_available(self, telegram_id, email) -> str:
        clean = email.strip().lower()
        taken = (
            db.session.query(User.telegram_id)
            .filter(func.lower(User.email) == clean, User.telegram_id != str(telegram_id))
            .first()
        )
        if taken is not None:
            raise UniquenessConflict("This email is already registered.\n\nContact admin if this is an error.")
        return clean

    def complete_registration(self, telegram_id, name, matric, level, email) -> User:
        """Replace placeholder fields with the validated answers."""
        user = self.require(telegram_id)
        user.name = name
        user.matric_no = self.check_matric_available(telegram_id, matric)
        user.level = int(level)
        user.email = self.check_email_available(telegram_id, email)
        if self.authorizer is not None and self.authorizer.is_main_admin(telegram_id):
            user.is_admin = True
        try:
            db.session.commit()
        except IntegrityError:
            # a concurrent registration took the matric or email
            db.session.rollback()
            raise UniquenessConflict("This matric number or email is already registered.")
        logger.info(f"Registration details saved for {telegram_id}")
        return user

    def mark_verified(self, telegram_id) -> User:
        user = self.require(telegram_id)
        user.is_verified = True
        db.session.commit()
        if self.audit_logger is not None:
            self.audit_logger.record('user_verified', {}, actor=telegram_id)
        return user

    def remove_user(self, telegram_id, actor=None) -> dict:
        """Delete a user with every row that references them.

        Votes cast by the user and votes cast for any of their candidacies
        go too, as does a campaign slot held by one of those candidacies.
        """
        telegram_id = str(telegram_id)
        user = self.require(telegram_id)
        name = user.name

        candidate_ids = [
            cid for (cid,) in db.session.query(Candidate.candidate_id).filter(Candidate.telegram_id == telegram_id)
        ]
        vote_filter = Vote.voter_telegram_id == telegram_id
        if candidate_ids:
            vote_filter = or_(vote_filter, Vote.candidate_id.in_(candidate_ids))
            db.session.query(CampaignWindow).filter(
                CampaignWindow.candidate_id.in_(candidate_ids)).delete(synchronize_session=False)
        removed_votes = db.session.query(Vote).filter(vote_filter).delete(synchronize_session=False)
        db.session.query(Candidate).filter(Candidate.telegram_id == telegram_id).delete(synchronize_session=False)
        for model in (VoterOTP, CandidateOTP, AdminOTP, UserState):
            db.session.query(model).filter(model.telegram_id == telegram_id).delete(synchronize_session=False)
        db.session.delete(user)
        db.session.commit()

        logger.info(f"Removed user {telegram_id} ({removed_votes} votes)")
        if self.audit_logger is not None:
            self.audit_logger.record('user_removed',
                                     {'user': self.audit_logger.hash_identity(telegram_id),
                                      'votes_removed': removed_votes}, actor=actor)
        return {'telegram_id': telegram_id, 'name': name, 'votes_removed': removed_votes}

    def set_admin(self, telegram_id, is_admin, actor=None) -> User:
        if not is_admin and actor is not None and str(telegram_id) == str(actor):
            raise ValidationFailed("Cannot remove yourself as admin.")
        user = self.require(telegram_id)
        if is_admin and not user.is_verified:
            raise ValidationFailed("Only verified users can be made admins.")
        user.is_admin = bool(is_admin)
        db.session.commit()
        if self.audit_logger is not None:
            event = 'admin_added' if is_admin else 'admin_removed'
            self.audit_logger.record(event, {'user': self.audit_logger.hash_identity(telegram_id)}, actor=actor)
        return user

    def list_users(self):
        return db.session.query(User).order_by(User.name).all()

    def verified_ids(self):
        return [tid for (tid,) in db.session.query(User.telegram_id).filter(User.is_verified.is_(True))]

    def statistics(self):
        total, verified, admins, levels = db.session.query(
            func.count(User.telegram_id),
            func.sum(case((User.is_verified.is_(True), 1), else_=0)),
            func.sum(case((User.is_admin.is_(True), 1), else_=0)),
            func.count(func.distinct(User.level)),
        ).one()
        verified = verified or 0
        return {
            'total_users': total,
            'verified_users': verified,
            'admin_users': admins or 0,
            'unique_levels': levels,
            'verification_rate': round(verified * 100.0 / total, 1) if total else 0.0,
        }

    def department_report(self):
        """Membership breakdown by department and level."""
        users = self.list_users()
        departments = Counter(self.matric_validator.department_of(u.matric_no) for u in users)
        levels = Counter(u.level for u in users)
        return {
            'total': len(users),
            'verified': sum(1 for u in users if u.is_verified),
            'departments': {
                'cg': departments.get("Computer Science", 0),
                'ch': departments.get("Computer Engineering", 0),
                'other': departments.get("Other/Invalid", 0),
            },
            'levels': dict(sorted(levels.items())),
        }
