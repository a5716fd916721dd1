# pollbuddy/routes.py

# HTTP surface: the Telegram webhook plus health endpoints.
# Services are created once per process here and shared by the CLI.

import hmac
import logging

from flask import request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from pollbuddy import app, limiter, db
from pollbuddy.audit.audit_logger import ElectionAuditLog, load_signing_key
from pollbuddy.authentication.admin import AdminAuthorizer
from pollbuddy.authentication.otp import OneTimeCodeService
from pollbuddy.bot import messages
from pollbuddy.bot.engine import ConversationEngine
from pollbuddy.candidates.lifecycle import CandidateService
from pollbuddy.conversation.store import ConversationStore
from pollbuddy.eligibility.input_validator import InputValidator
from pollbuddy.eligibility.matric_validator import MatricValidator
from pollbuddy.encryption.ballot_encryption import BallotEncryptionService
from pollbuddy.operations.health_monitor import check_health, check_ready
from pollbuddy.transport.mailer import Mailer
from pollbuddy.transport.telegram import TelegramTransport, TransportError, parse_update
from pollbuddy.users.registry import UserService
from pollbuddy.voting.ballot import BallotService
from pollbuddy.voting.campaign import CampaignService
from pollbuddy.voting.window import VotingWindowService

logger = logging.getLogger(__name__)

SECRET_HEADER = 'X-Telegram-Bot-Api-Secret-Token'

config = app.config

audit_logger = ElectionAuditLog(
    log_dir=config['AUDIT_LOG_DIR'],
    election_id=config['ELECTION_ID'],
    signing_key=load_signing_key(config['AUDIT_SIGNING_KEY_PATH']),
)
encryption_service = BallotEncryptionService.load_or_generate(config['ELECTION_PRIVATE_KEY_PATH'])
transport = TelegramTransport(config['BOT_TOKEN'], config['TELEGRAM_API_URL'])
mailer = Mailer.from_config(config)

matric_validator = MatricValidator()
validator = InputValidator(email_domain=config['EMAIL_DOMAIN'], matric_validator=matric_validator)
authorizer = AdminAuthorizer(config['ADMIN_TELEGRAM_ID'])

otp_service = OneTimeCodeService(mailer=mailer, ttl_minutes=config['OTP_TTL_MINUTES'], audit_logger=audit_logger)
user_service = UserService(matric_validator, authorizer=authorizer, audit_logger=audit_logger)
candidate_service = CandidateService(otp_service, validator, audit_logger=audit_logger)
window_service = VotingWindowService(audit_logger=audit_logger)
ballot_service = BallotService(encryption_service, window_service, config['ELECTION_ID'], audit_logger=audit_logger)
campaign_service = CampaignService(
    transport,
    app=app,
    campaign_chat_ids=config['CAMPAIGN_CHAT_IDS'],
    default_hours=config['CAMPAIGN_HOURS'],
    audit_logger=audit_logger,
)
conversation_store = ConversationStore()

engine = ConversationEngine(
    transport=transport,
    store=conversation_store,
    users=user_service,
    otp_service=otp_service,
    candidates=candidate_service,
    ballots=ballot_service,
    window=window_service,
    campaigns=campaign_service,
    validator=validator,
    authorizer=authorizer,
    admin_chat_id=config['ADMIN_TELEGRAM_ID'] or None,
    audit_logger=audit_logger,
)


def reconcile_campaign():
    """Settle a campaign that expired while the process was down."""
    with app.app_context():
        try:
            campaign_service.reconcile()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"Campaign reconciliation skipped: {e}")


def handle_update(update):
    """Run one Bot API update through the engine.

    Unexpected failures are logged and audited and the session is rolled
    back; the user gets a generic retry message.
    """
    event = parse_update(update)
    if event is None:
        return False
    try:
        engine.handle_event(event)
    except Exception as e:
        db.session.rollback()
        logger.exception(f"Failed to handle update from {event.chat_id}")
        audit_logger.record('update_error', {'error': type(e).__name__}, actor=event.chat_id)
        try:
            transport.send_message(event.chat_id, messages.GENERIC_FAILURE)
        except TransportError as send_error:
            logger.warning(f"Could not report failure to {event.chat_id}: {send_error}")
    return True


@app.route('/telegram/webhook', methods=['POST'])
@limiter.limit("600/minute")
def telegram_webhook():
    secret = config['WEBHOOK_SECRET']
    if secret and not hmac.compare_digest(request.headers.get(SECRET_HEADER, '').encode(), secret.encode()):
        audit_logger.record('webhook_rejected', {'ip': request.remote_addr})
        return jsonify({'error': 'Forbidden'}), 403

    update = request.get_json(silent=True)
    if not isinstance(update, dict):
        return jsonify({'error': 'Invalid update'}), 400

    # Always 200 once accepted, otherwise Telegram redelivers the update
    handled = handle_update(update)
    return jsonify({'ok': True, 'handled': handled})


@app.get('/health')
def health():
    result = check_health(config)
    return jsonify(result), 200 if result['overall_ok'] else 503


@app.get('/ready')
def ready():
    result = check_ready(config)
    return jsonify(result), 200 if result['overall_ok'] else 503


reconcile_campaign()
