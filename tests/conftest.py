import os
import tempfile
from types import SimpleNamespace

import pytest

# Configuration is read when the package is imported
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['AUDIT_LOG_DIR'] = tempfile.mkdtemp(prefix='pollbuddy-audit-')
os.environ['BOT_TOKEN'] = 'test-token'
os.environ['ADMIN_TELEGRAM_ID'] = '1000'
os.environ['WEBHOOK_SECRET'] = 'test-secret'
os.environ['MIN_FREE_DISK_GB'] = '0'
os.environ['CAMPAIGN_CHAT_IDS'] = '-100'
os.environ.pop('ELECTION_PRIVATE_KEY_PATH', None)
os.environ.pop('AUDIT_SIGNING_KEY_PATH', None)

from pollbuddy import app, db  # noqa: E402
from pollbuddy.audit.audit_logger import ElectionAuditLog  # noqa: E402
from pollbuddy.authentication.admin import AdminAuthorizer  # noqa: E402
from pollbuddy.authentication.otp import OneTimeCodeService  # noqa: E402
from pollbuddy.bot.engine import ConversationEngine  # noqa: E402
from pollbuddy.candidates.lifecycle import CandidateService  # noqa: E402
from pollbuddy.conversation.store import ConversationStore  # noqa: E402
from pollbuddy.database.models import Candidate, User  # noqa: E402
from pollbuddy.eligibility.input_validator import InputValidator  # noqa: E402
from pollbuddy.eligibility.matric_validator import MatricValidator  # noqa: E402
from pollbuddy.encryption.ballot_encryption import BallotEncryptionService  # noqa: E402
from pollbuddy.transport.telegram import InboundEvent, TransportError  # noqa: E402
from pollbuddy.users.registry import UserService  # noqa: E402
from pollbuddy.voting.ballot import BallotService  # noqa: E402
from pollbuddy.voting.campaign import CampaignService  # noqa: E402
from pollbuddy.voting.window import VotingWindowService  # noqa: E402

MAIN_ADMIN_ID = '1000'
CAMPAIGN_CHAT_ID = '-100'
ELECTION_ID = 'test_election'


class FakeTransport:
    """Records outbound calls instead of talking to the Bot API."""

    def __init__(self):
        self.sent = []
        self.photos = []
        self.answered = []
        self.webhooks = []
        self.fail_for = set()

    def _check(self, chat_id):
        if str(chat_id) in self.fail_for:
            raise TransportError(f"chat {chat_id} unreachable")

    def send_message(self, chat_id, text, choices=None):
        self._check(chat_id)
        self.sent.append((str(chat_id), text, choices))
        return {'message_id': len(self.sent)}

    def present_choices(self, chat_id, text, choices):
        return self.send_message(chat_id, text, choices=choices)

    def send_photo(self, chat_id, photo_ref, caption=None):
        self._check(chat_id)
        self.photos.append((str(chat_id), photo_ref, caption))
        return {'message_id': len(self.photos)}

    def answer_callback(self, callback_id):
        self.answered.append(callback_id)

    def set_webhook(self, url, secret=None):
        self.webhooks.append((url, secret))
        return True

    def texts_to(self, chat_id):
        return [text for chat, text, _ in self.sent if chat == str(chat_id)]

    def last_to(self, chat_id):
        texts = self.texts_to(chat_id)
        return texts[-1] if texts else None

    def choices_to(self, chat_id):
        return [choices for chat, _, choices in self.sent if chat == str(chat_id) and choices]


class FakeMailer:
    def __init__(self, ok=True):
        self.ok = ok
        self.outbox = []

    def send_otp(self, to, code, ttl_minutes=5):
        self.outbox.append((to, code))
        return self.ok

    @property
    def last_code(self):
        return self.outbox[-1][1]


class FakeTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class Chat:
    """Feeds inbound events to the engine the way the webhook would."""

    def __init__(self, engine):
        self.engine = engine

    def text(self, chat_id, text):
        self.engine.handle_event(InboundEvent(chat_id=str(chat_id), text=text))

    def command(self, chat_id, command, *args, username=None):
        self.engine.handle_event(InboundEvent(chat_id=str(chat_id), command=command, args=args, username=username))

    def action(self, chat_id, action, callback_id=None):
        self.engine.handle_event(InboundEvent(chat_id=str(chat_id), action=action, callback_id=callback_id))

    def photo(self, chat_id, photo_ref):
        self.engine.handle_event(InboundEvent(chat_id=str(chat_id), photo=photo_ref))


@pytest.fixture
def app_ctx():
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def audit_log(tmp_path):
    return ElectionAuditLog(log_dir=str(tmp_path / 'audit'), election_id=ELECTION_ID)


@pytest.fixture(scope='session')
def encryption_service():
    return BallotEncryptionService()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def services(app_ctx, transport, mailer, timers, audit_log, encryption_service):
    def timer_factory(interval, function):
        timer = FakeTimer(interval, function)
        timers.append(timer)
        return timer

    matric_validator = MatricValidator()
    validator = InputValidator(matric_validator=matric_validator)
    authorizer = AdminAuthorizer(MAIN_ADMIN_ID)
    otp_service = OneTimeCodeService(mailer=mailer, ttl_minutes=5, audit_logger=audit_log)
    users = UserService(matric_validator, authorizer=authorizer, audit_logger=audit_log)
    candidates = CandidateService(otp_service, validator, audit_logger=audit_log)
    window = VotingWindowService(audit_logger=audit_log)
    ballots = BallotService(encryption_service, window, ELECTION_ID, audit_logger=audit_log)
    campaigns = CampaignService(transport, campaign_chat_ids=[CAMPAIGN_CHAT_ID], default_hours=24,
                                timer_factory=timer_factory, audit_logger=audit_log)
    store = ConversationStore()
    engine = ConversationEngine(
        transport=transport,
        store=store,
        users=users,
        otp_service=otp_service,
        candidates=candidates,
        ballots=ballots,
        window=window,
        campaigns=campaigns,
        validator=validator,
        authorizer=authorizer,
        admin_chat_id=MAIN_ADMIN_ID,
        audit_logger=audit_log,
    )
    return SimpleNamespace(
        matric_validator=matric_validator, validator=validator, authorizer=authorizer,
        otp=otp_service, users=users, candidates=candidates, window=window, ballots=ballots,
        campaigns=campaigns, store=store, engine=engine, transport=transport, mailer=mailer,
        timers=timers, audit_log=audit_log, encryption=encryption_service,
    )


@pytest.fixture
def chat(services):
    return Chat(services.engine)


@pytest.fixture
def make_user(app_ctx):
    def _make_user(telegram_id, name="Ada Obi", matric=None, level=300, email=None,
                   verified=True, is_admin=False):
        telegram_id = str(telegram_id)
        user = User(
            telegram_id=telegram_id,
            name=name,
            matric_no=matric or f"21cg{int(telegram_id) % 1000000:06d}",
            email=email or f"user.{telegram_id}@stu.cu.edu.ng",
            level=level,
            is_verified=verified,
            is_admin=is_admin,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def make_candidate(app_ctx, make_user):
    def _make_candidate(telegram_id, position="Treasurer", approved=True, manifesto=None,
                        picture=None, name=None):
        user = db.session.get(User, str(telegram_id)) or make_user(telegram_id, name=name or "Ada Obi")
        candidate = Candidate(
            telegram_id=user.telegram_id,
            name=name or user.name,
            position=position,
            is_approved=approved,
            manifesto=manifesto,
            picture=picture,
        )
        db.session.add(candidate)
        db.session.commit()
        return candidate
    return _make_candidate
