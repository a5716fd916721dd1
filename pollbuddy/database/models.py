# pollbuddy/database/models.py

from pollbuddy import db
from datetime import datetime, timezone
from sqlalchemy.orm import declared_attr

# Election schema: users, one-time codes, conversation state, candidacies,
# ballots and the two singleton rows (voting period, active campaign).

SINGLETON_ID = 1


def utcnow():
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    __tablename__ = 'users'
    telegram_id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    matric_no = db.Column(db.String(32), unique=True, nullable=False)
    level = db.Column(db.Integer, nullable=False, default=100)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<User {self.telegram_id} {self.matric_no}>'


class OneTimeCodeMixin:
    """A single live code per user; replaced on re-issue, deleted on use."""

    @declared_attr
    def telegram_id(cls):
        return db.Column(db.String(32), db.ForeignKey('users.telegram_id'), primary_key=True)

    code = db.Column(db.String(6), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)


class VoterOTP(OneTimeCodeMixin, db.Model):
    __tablename__ = 'otps'


class CandidateOTP(OneTimeCodeMixin, db.Model):
    __tablename__ = 'candidate_otps'


class AdminOTP(OneTimeCodeMixin, db.Model):
    __tablename__ = 'admin_otps'


class UserState(db.Model):
    __tablename__ = 'user_states'
    telegram_id = db.Column(db.String(32), db.ForeignKey('users.telegram_id'), primary_key=True)
    state = db.Column(db.Text, nullable=False)  # JSON document, see conversation.states
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class Candidate(db.Model):
    __tablename__ = 'candidates'
    __table_args__ = (db.UniqueConstraint('telegram_id', 'position', name='uq_candidate_user_position'),)
    candidate_id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    telegram_id = db.Column(db.String(32), db.ForeignKey('users.telegram_id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    position = db.Column(db.String(64), nullable=False)
    picture = db.Column(db.String(255), nullable=True)  # transport photo reference
    manifesto = db.Column(db.String(500), nullable=True)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    votes = db.relationship('Vote', backref='candidate', lazy=True)

    def __repr__(self):
        return f'<Candidate {self.candidate_id} {self.name} for {self.position}>'


class Vote(db.Model):
    __tablename__ = 'votes'
    vote_id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    voter_telegram_id = db.Column(db.String(32), db.ForeignKey('users.telegram_id'), unique=True, nullable=False)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.candidate_id'), nullable=False)
    encrypted_vote = db.Column(db.Text, nullable=False)  # base64 RSA-OAEP ciphertext
    cast_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<Vote {self.vote_id} by User {self.voter_telegram_id}>'


class VotingPeriod(db.Model):
    __tablename__ = 'voting_period'
    __table_args__ = (db.CheckConstraint('start_date <= end_date', name='ck_voting_period_order'),)
    id = db.Column(db.Integer, primary_key=True, default=SINGLETON_ID)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)


class CampaignWindow(db.Model):
    __tablename__ = 'campaign_window'
    id = db.Column(db.Integer, primary_key=True, default=SINGLETON_ID)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.candidate_id'), nullable=False)
    started_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    ends_at = db.Column(db.DateTime, nullable=False)

    candidate = db.relationship('Candidate', lazy='joined')
