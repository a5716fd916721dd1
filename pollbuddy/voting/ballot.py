# pollbuddy/voting/ballot.py

import logging
from collections import OrderedDict

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pollbuddy import db
from pollbuddy.database.models import Candidate, User, UserState, Vote, utcnow
from pollbuddy.encryption.ballot_encryption import DecryptionError
from pollbuddy.errors import AlreadyVoted, InvalidSelection, NotFound, NotVerified, StoreFailure

# Casting and counting ballots: one vote per verified voter, inside the
# voting window, stored encrypted. Counting uses row counts, never
# decryption.

logger = logging.getLogger(__name__)


class BallotService:
    def __init__(self, encryption_service, window_service, election_id, audit_logger=None):
        self.encryption = encryption_service
        self.window = window_service
        self.election_id = election_id
        self.audit_logger = audit_logger

    def _now(self):
        # extracted for easier monkeypatching in tests
        return utcnow()

    def has_voted(self, telegram_id) -> bool:
        return db.session.query(Vote.vote_id).filter_by(voter_telegram_id=str(telegram_id)).first() is not None

    def _require_verified(self, telegram_id):
        user = db.session.get(User, str(telegram_id))
        if user is None or not user.is_verified:
            raise NotVerified("You must be registered and verified to vote.\n\nUse /register to get started.")
        return user

    def ballot_candidates(self, telegram_id):
        """Approved candidates a voter may choose from (never themselves)."""
        return (
            db.session.query(Candidate)
            .filter(Candidate.is_approved.is_(True), Candidate.telegram_id != str(telegram_id))
            .order_by(Candidate.position, Candidate.candidate_id)
            .all()
        )

    def open_ballot(self, telegram_id):
        """Check eligibility to vote now and list the selectable candidates."""
        self._require_verified(telegram_id)
        self.window.require_open()
        if self.has_voted(telegram_id):
            raise AlreadyVoted("You have already cast your vote.\n\nThank you for participating!")
        return self.ballot_candidates(telegram_id)

    def cast_vote(self, telegram_id, candidate_id) -> Candidate:
        telegram_id = str(telegram_id)
        self._require_verified(telegram_id)
        self.window.require_open()
        if self.has_voted(telegram_id):
            self._audit('duplicate_vote_attempt', {}, telegram_id)
            raise AlreadyVoted()

        candidate = db.session.get(Candidate, int(candidate_id))
        if candidate is None or not candidate.is_approved:
            raise InvalidSelection()

        payload = {
            'voter_id': telegram_id,
            'candidate_id': candidate.candidate_id,
            'timestamp': self._now().isoformat(),
            'election_id': self.election_id,
        }
        # EncryptFailed propagates before anything is written
        encrypted_vote = self.encryption.encrypt_vote(payload)

        try:
            db.session.add(Vote(
                voter_telegram_id=telegram_id,
                candidate_id=candidate.candidate_id,
                encrypted_vote=encrypted_vote,
            ))
            db.session.query(UserState).filter(UserState.telegram_id == telegram_id).delete()
            db.session.commit()
        except IntegrityError:
            # UNIQUE(voter_telegram_id): a concurrent duplicate got there first
            db.session.rollback()
            self._audit('duplicate_vote_attempt', {'race': True}, telegram_id)
            raise AlreadyVoted()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to store vote for {telegram_id}: {e}")
            raise StoreFailure()

        self._audit('vote_cast', {'position': candidate.position}, telegram_id)
        logger.info(f"Vote recorded for position {candidate.position}")
        return candidate

    def candidate_vote_count(self, candidate_id) -> int:
        return db.session.query(func.count(Vote.vote_id)).filter(Vote.candidate_id == candidate_id).scalar()

    def turnout(self):
        verified = db.session.query(func.count(User.telegram_id)).filter(User.is_verified.is_(True)).scalar()
        votes = db.session.query(func.count(Vote.vote_id)).scalar()
        return {
            'verified_voters': verified,
            'votes_cast': votes,
            'turnout_pct': round(votes * 100.0 / verified, 1) if verified else 0.0,
        }

    def tally(self):
        """Vote counts per approved candidate, grouped by position.

        Returns an ordered mapping position -> list of
        ``{'candidate_id', 'name', 'votes'}`` sorted by descending votes.
        """
        vote_count = func.count(Vote.vote_id).label('vote_count')
        rows = (
            db.session.query(Candidate.candidate_id, Candidate.name, Candidate.position, vote_count)
            .outerjoin(Vote, Vote.candidate_id == Candidate.candidate_id)
            .filter(Candidate.is_approved.is_(True))
            .group_by(Candidate.candidate_id, Candidate.name, Candidate.position)
            .order_by(Candidate.position, vote_count.desc(), Candidate.name)
            .all()
        )
        results = OrderedDict()
        for candidate_id, name, position, votes in rows:
            results.setdefault(position, []).append({
                'candidate_id': candidate_id,
                'name': name,
                'votes': votes,
            })
        return results

    def decrypt_vote(self, encrypted_vote: str) -> dict:
        return self.encryption.decrypt_vote(encrypted_vote)

    def audit_vote(self, vote_id, actor=None):
        """Decrypt one stored ballot and compare it with its recorded row."""
        vote = db.session.get(Vote, int(vote_id))
        if vote is None:
            raise NotFound(f"Vote {vote_id} not found.")
        try:
            ballot = self.decrypt_vote(vote.encrypted_vote)
        except DecryptionError as e:
            logger.warning(f"Vote {vote_id} could not be decrypted: {e}")
            ballot = None
        consistent = (
            ballot is not None
            and ballot.get('candidate_id') == vote.candidate_id
            and ballot.get('voter_id') == vote.voter_telegram_id
            and ballot.get('election_id') == self.election_id
        )
        self._audit('vote_audited', {'vote_id': vote.vote_id, 'consistent': consistent}, actor)
        return {
            'vote_id': vote.vote_id,
            'recorded_candidate_id': vote.candidate_id,
            'ballot': ballot,
            'consistent': consistent,
        }

    def _audit(self, event, data, telegram_id):
        if self.audit_logger is not None:
            self.audit_logger.record(event, data, actor=telegram_id)
