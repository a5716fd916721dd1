# pollbuddy/operations/cleanup.py

# Removal of rows whose user no longer exists, left behind by manual
# deletes or an older schema without foreign key enforcement.

import logging

from sqlalchemy import select

from pollbuddy import db
from pollbuddy.database.models import (
    AdminOTP, CampaignWindow, Candidate, CandidateOTP, User, UserState, Vote, VoterOTP,
)

logger = logging.getLogger(__name__)


def cleanup_orphans():
    """Delete dangling rows; returns the number removed per table."""
    known_users = select(User.telegram_id)
    removed = {}

    for model in (UserState, VoterOTP, AdminOTP, CandidateOTP):
        removed[model.__tablename__] = (
            db.session.query(model)
            .filter(model.telegram_id.not_in(known_users))
            .delete(synchronize_session=False)
        )

    removed['votes'] = (
        db.session.query(Vote)
        .filter(Vote.voter_telegram_id.not_in(known_users))
        .delete(synchronize_session=False)
    )

    orphan_candidates = select(Candidate.candidate_id).where(Candidate.telegram_id.not_in(known_users))
    removed['campaign_window'] = (
        db.session.query(CampaignWindow)
        .filter(CampaignWindow.candidate_id.in_(orphan_candidates))
        .delete(synchronize_session=False)
    )
    removed['votes'] += (
        db.session.query(Vote)
        .filter(Vote.candidate_id.in_(orphan_candidates))
        .delete(synchronize_session=False)
    )
    removed['candidates'] = (
        db.session.query(Candidate)
        .filter(Candidate.telegram_id.not_in(known_users))
        .delete(synchronize_session=False)
    )

    db.session.commit()
    for table, count in removed.items():
        if count:
            logger.info(f"Cleaned {count} orphaned {table} rows")
    return removed
