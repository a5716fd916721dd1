# pollbuddy/conversation/store.py

import logging

from pollbuddy import db
from pollbuddy.conversation.states import dump_state, load_state
from pollbuddy.database.models import UserState

logger = logging.getLogger(__name__)


class ConversationStore:
    """Persisted step per user. A row exists only while a flow is in progress."""

    def get(self, telegram_id):
        row = db.session.get(UserState, str(telegram_id))
        if row is None:
            return None
        state = load_state(row.state)
        if state is None:
            logger.warning(f"Discarding unreadable conversation state for {telegram_id}")
        return state

    def save(self, telegram_id, state):
        db.session.merge(UserState(telegram_id=str(telegram_id), state=dump_state(state)))
        db.session.commit()
        return state

    def clear(self, telegram_id):
        db.session.query(UserState).filter(UserState.telegram_id == str(telegram_id)).delete()
        db.session.commit()
