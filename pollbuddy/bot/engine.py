# pollbuddy/bot/engine.py
"""Conversation engine: routes each inbound chat event to its handler.

One event is handled per request. The user's persisted step decides how
free text is read:

1. a bare 6-digit reply is a verification code (voter first, then
   candidate), whatever the step;
2. a photo while in ``upload_photo`` becomes the campaign picture;
3. text in ``edit_manifesto`` becomes the manifesto;
4. registration steps collect name, matric, level and email in order;
5. numeric text in ``voting`` casts a vote for a listed candidate.

Text without a step is ignored. Services raise ElectionError subclasses;
the engine turns them into replies and keeps the step so the user can
retry.
"""

import logging
import re

from sqlalchemy.exc import SQLAlchemyError

from pollbuddy import db
from pollbuddy.authentication.otp import OTPFlow
from pollbuddy.bot import messages
from pollbuddy.bot.admin import AdminConsole
from pollbuddy.conversation.states import (
    CandidateOTPStep, EditManifestoStep, EmailStep, LevelStep, MatricStep, NameStep,
    UploadPhotoStep, VotingStep,
)
from pollbuddy.errors import (
    AlreadyVoted, CodeExpired, ElectionError, InvalidSelection, NotFound, StoreFailure,
    VotingWindowError,
)
from pollbuddy.transport.telegram import TransportError
from pollbuddy.voting.window import WindowState

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r'^[0-9]{6}$')
NUMBER_PATTERN = re.compile(r'^[0-9]+$')

ERROR_ICONS = (
    (VotingWindowError, "⏰"),
    (CodeExpired, "⏰"),
    (AlreadyVoted, "✅"),
)


def format_error(error):
    message = error.message
    if message.startswith("❌ "):
        message = message[len("❌ "):]
    for error_type, icon in ERROR_ICONS:
        if isinstance(error, error_type):
            return f"{icon} {message}"
    return f"❌ {message}"


class ConversationEngine:
    def __init__(self, transport, store, users, otp_service, candidates, ballots,
                 window, campaigns, validator, authorizer, admin_chat_id=None,
                 audit_logger=None):
        self.transport = transport
        self.store = store
        self.users = users
        self.otp = otp_service
        self.candidates = candidates
        self.ballots = ballots
        self.window = window
        self.campaigns = campaigns
        self.validator = validator
        self.authorizer = authorizer
        self.admin_chat_id = admin_chat_id
        self.audit_logger = audit_logger
        self.admin = AdminConsole(self)

        self.commands = {
            'start': self.cmd_start,
            'register': self.cmd_register,
            'help': self.cmd_help,
        }
        self.actions = {
            'view_candidates': self.act_view_candidates,
            'vote': self.act_vote,
            'apply_candidate': self.act_apply_candidate,
            'candidate_profile': self.act_candidate_profile,
            'upload_photo': self.act_upload_photo,
            'edit_manifesto': self.act_edit_manifesto,
            'view_my_results': self.act_view_my_results,
            'request_campaign': self.act_request_campaign,
            'main_menu': self.show_main_menu,
            'back_to_menu': self.show_main_menu,
            'help_menu': self.cmd_help,
        }
        self.registration_handlers = {
            NameStep: self.on_name,
            MatricStep: self.on_matric,
            LevelStep: self.on_level,
            EmailStep: self.on_email,
        }

    # Entry point

    def handle_event(self, event):
        if event is None:
            return
        chat_id = event.chat_id
        if event.callback_id:
            self._best_effort(self.transport.answer_callback, event.callback_id)
        try:
            if event.kind == 'command':
                self.on_command(chat_id, event.command, event.args, username=event.username)
            elif event.kind == 'action':
                self.on_action(chat_id, event.action)
            elif event.kind == 'photo':
                self.on_photo(chat_id, event.photo)
            elif event.kind == 'text':
                self.on_text(chat_id, event.text)
        except ElectionError as e:
            logger.info(f"{e.code} for {chat_id}: {e.message}")
            self.reply(chat_id, format_error(e))
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error handling event from {chat_id}: {e}")
            self.reply(chat_id, StoreFailure().message)

    def on_command(self, chat_id, command, args=(), username=None):
        handler = self.commands.get(command)
        if handler is not None:
            if command == 'start':
                return handler(chat_id, username=username)
            return handler(chat_id)
        if self.admin.handles_command(command):
            return self.admin.on_command(chat_id, command, args)
        logger.debug(f"Ignoring unknown command /{command} from {chat_id}")

    def on_action(self, chat_id, action):
        handler = self.actions.get(action)
        if handler is not None:
            return handler(chat_id)
        if action.startswith('select_position_'):
            return self.act_select_position(chat_id, action[len('select_position_'):])
        if self.admin.handles_action(action):
            return self.admin.on_action(chat_id, action)
        logger.debug(f"Ignoring unknown action {action!r} from {chat_id}")

    def on_text(self, chat_id, text):
        text = (text or '').strip()
        if CODE_PATTERN.match(text):
            return self.on_code(chat_id, text)

        state = self.store.get(chat_id)
        if state is None:
            return

        if isinstance(state, UploadPhotoStep):
            return self.reply(chat_id, messages.SEND_A_PHOTO)
        if isinstance(state, EditManifestoStep):
            return self.on_manifesto(chat_id, text)
        handler = self.registration_handlers.get(type(state))
        if handler is not None:
            return handler(chat_id, state, text)
        if isinstance(state, VotingStep):
            return self.on_ballot_choice(chat_id, state, text)
        if isinstance(state, CandidateOTPStep):
            return self.reply(chat_id, messages.AWAITING_CANDIDATE_CODE)

    def on_photo(self, chat_id, photo_ref):
        state = self.store.get(chat_id)
        if not isinstance(state, UploadPhotoStep):
            return
        candidate = self.candidates.set_photo(chat_id, photo_ref)
        self.store.clear(chat_id)
        self.reply(
            chat_id,
            messages.profile_text(candidate, heading="✅ Photo uploaded successfully!\n\n👤 Your Updated Profile:"),
            messages.PROFILE_MENU,
        )

    # Commands

    def cmd_start(self, chat_id, username=None):
        username = username or "User"
        if self.users.is_verified(chat_id):
            self.reply(chat_id, messages.WELCOME_BACK.format(username=username))
            return self.show_main_menu(chat_id)
        self.reply(chat_id, messages.WELCOME_NEW.format(username=username))

    def cmd_register(self, chat_id):
        if self.users.is_verified(chat_id):
            self.reply(chat_id, messages.ALREADY_REGISTERED)
            return self.show_main_menu(chat_id)
        self.users.start_registration(chat_id)
        self.store.save(chat_id, NameStep())
        self.reply(chat_id, messages.ASK_NAME)

    def cmd_help(self, chat_id):
        text = messages.HELP_TEXT
        if self.authorizer.is_admin(chat_id):
            text += messages.ADMIN_HELP_TEXT
        self.reply(chat_id, text)

    def show_main_menu(self, chat_id):
        is_candidate = self.candidates.get_candidate(chat_id) is not None
        is_admin = self.authorizer.is_admin(chat_id)
        self.reply(chat_id, messages.main_menu_text(is_candidate, is_admin),
                   messages.main_menu(is_candidate, is_admin))

    # Registration wizard

    def on_name(self, chat_id, state, text):
        if not self.validator.validate_name(text):
            return self.reply(chat_id, messages.BAD_NAME)
        name = self.validator.sanitize_string(' '.join(text.split()), max_length=120)
        self.store.save(chat_id, MatricStep(name=name))
        self.reply(chat_id, messages.ASK_MATRIC)

    def on_matric(self, chat_id, state, text):
        result = self.validator.matric_validator.validate_matric_number(text)
        if not (result['is_valid'] and result['is_member']):
            return self.reply(chat_id, result['message'])
        matric = self.users.check_matric_available(chat_id, result['details']['clean_matric'])
        self.store.save(chat_id, LevelStep(name=state.name, matric=matric))
        self.reply(chat_id, messages.ASK_LEVEL)

    def on_level(self, chat_id, state, text):
        if not self.validator.validate_level(text):
            return self.reply(chat_id, messages.BAD_LEVEL)
        self.store.save(chat_id, EmailStep(name=state.name, matric=state.matric, level=int(text)))
        self.reply(chat_id, messages.ASK_EMAIL)

    def on_email(self, chat_id, state, text):
        if not self.validator.validate_email(text):
            return self.reply(chat_id, messages.BAD_EMAIL)
        user = self.users.complete_registration(chat_id, state.name, state.matric, state.level, text)
        # DeliveryFailed leaves the email step in place for a retry
        self.otp.issue(chat_id, OTPFlow.VOTER, email=user.email)
        self.store.clear(chat_id)
        self.reply(chat_id, messages.OTP_SENT)

    # Verification codes

    def on_code(self, chat_id, code):
        flow = self.otp.pending_flow(chat_id)
        if flow is None:
            return self.reply(chat_id, messages.NO_PENDING_CODE)

        if flow is OTPFlow.VOTER:
            try:
                self.otp.verify(chat_id, OTPFlow.VOTER, code)
            except CodeExpired:
                return self.reply(chat_id, messages.VOTER_CODE_EXPIRED)
            self.users.mark_verified(chat_id)
            self.reply(chat_id, messages.VOTER_VERIFIED)
            return self.show_main_menu(chat_id)

        try:
            candidate = self.candidates.confirm_application(chat_id, code)
        except CodeExpired:
            self.store.clear(chat_id)
            raise
        self.store.clear(chat_id)
        self.reply(chat_id, messages.CANDIDATE_VERIFIED)
        if self.admin_chat_id:
            self._notify(self.admin_chat_id, messages.approval_request(candidate),
                         messages.approval_buttons(candidate.telegram_id))

    # Candidates

    def act_view_candidates(self, chat_id):
        candidates = self.candidates.list_approved()
        if not candidates:
            return self.reply(chat_id, messages.NO_APPROVED_CANDIDATES)
        self.reply(chat_id, f"🗳️ Approved Candidates ({len(candidates)})")
        for candidate in candidates:
            self._send_card(chat_id, candidate, messages.candidate_card(candidate))

    def act_apply_candidate(self, chat_id):
        _, positions = self.candidates.check_can_apply(chat_id)
        self.reply(chat_id, "🎯 Select the position you want to run for:", messages.positions_menu(positions))

    def act_select_position(self, chat_id, position):
        self.candidates.apply(chat_id, position)
        self.store.save(chat_id, CandidateOTPStep(position=position))
        self.reply(chat_id, messages.application_submitted(position))

    def act_candidate_profile(self, chat_id):
        candidate = self._require_candidate(chat_id)
        self.reply(chat_id, messages.profile_text(candidate), messages.PROFILE_MENU)

    def act_upload_photo(self, chat_id):
        self._require_candidate(chat_id)
        self.store.save(chat_id, UploadPhotoStep())
        self.reply(chat_id, messages.ASK_PHOTO)

    def act_edit_manifesto(self, chat_id):
        self._require_candidate(chat_id)
        self.store.save(chat_id, EditManifestoStep())
        self.reply(chat_id, messages.ASK_MANIFESTO)

    def on_manifesto(self, chat_id, text):
        self.candidates.set_manifesto(chat_id, text)
        self.store.clear(chat_id)
        self.reply(chat_id, messages.MANIFESTO_SAVED)

    def act_view_my_results(self, chat_id):
        candidate = self._require_candidate(chat_id)
        state = self.window.status()
        if state is WindowState.NOT_SET:
            return self.reply(chat_id, messages.NO_ELECTION_PERIOD)
        if state is not WindowState.CLOSED:
            return self.reply(chat_id, messages.RESULTS_NOT_READY)
        votes = self.ballots.candidate_vote_count(candidate.candidate_id)
        self.reply(chat_id, messages.my_results(votes))

    def act_request_campaign(self, chat_id):
        candidate = self.candidates.get_candidate(chat_id)
        if candidate is None or not candidate.is_approved:
            return self.reply(chat_id, messages.ONLY_APPROVED_CAMPAIGN)
        hours = self.campaigns.default_hours
        self.campaigns.start_campaign(candidate.candidate_id, hours, actor=chat_id)
        self.reply(chat_id, messages.campaign_started(candidate, hours))

    def _require_candidate(self, chat_id):
        candidate = self.candidates.get_candidate(chat_id)
        if candidate is None:
            raise NotFound("Candidate profile not found.")
        return candidate

    # Voting

    def act_vote(self, chat_id):
        candidates = self.ballots.open_ballot(chat_id)
        if not candidates:
            return self.reply(chat_id, messages.NO_BALLOT_CANDIDATES)
        self.reply(chat_id, messages.BALLOT_PROMPT)
        for candidate in candidates:
            self._send_card(chat_id, candidate, messages.candidate_card(candidate, for_ballot=True))
        self.store.save(chat_id, VotingStep(candidates=[c.candidate_id for c in candidates]))

    def on_ballot_choice(self, chat_id, state, text):
        if not NUMBER_PATTERN.match(text):
            return self.reply(chat_id, messages.REPLY_WITH_ID)
        candidate_id = int(text)
        if candidate_id not in state.candidates:
            raise InvalidSelection()
        try:
            candidate = self.ballots.cast_vote(chat_id, candidate_id)
        except (AlreadyVoted, VotingWindowError):
            # the ballot can no longer be used
            self.store.clear(chat_id)
            raise
        self.reply(chat_id, messages.vote_recorded(candidate))
        self.show_main_menu(chat_id)

    # Output

    def reply(self, chat_id, text, choices=None):
        if choices:
            return self.transport.present_choices(chat_id, text, choices)
        return self.transport.send_message(chat_id, text)

    def _send_card(self, chat_id, candidate, text):
        if candidate.picture:
            return self.transport.send_photo(chat_id, candidate.picture, text)
        return self.transport.send_message(chat_id, text)

    def _notify(self, chat_id, text, choices=None):
        """Message someone other than the sender; failures are only logged."""
        try:
            self.reply(chat_id, text, choices)
            return True
        except TransportError as e:
            logger.warning(f"Could not notify {chat_id}: {e}")
            return False

    def _best_effort(self, call, *args):
        try:
            call(*args)
        except TransportError as e:
            logger.warning(f"{getattr(call, '__name__', 'transport call')} failed: {e}")

