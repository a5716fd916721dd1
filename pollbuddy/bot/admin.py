# pollbuddy/bot/admin.py

import logging

from pollbuddy.authentication.admin import Permission, require_permission
from pollbuddy.bot import messages
from pollbuddy.errors import ValidationFailed, WindowNotSet
from pollbuddy.voting.window import WindowState

# Admin commands and dashboard actions. Every handler is permission
# guarded; a refused caller gets NotAuthorized, which the engine replies to.

logger = logging.getLogger(__name__)

# positional arguments each command reads; extras are ignored
COMMAND_ARGS = {
    'remove_user': 1,
    'add_admin': 1,
    'remove_admin': 1,
    'audit_vote': 1,
    'set_voting_period': 3,
}


class AdminConsole:
    def __init__(self, engine):
        self.engine = engine
        self.authorizer = engine.authorizer

        self.commands = {
            'admin': self.show_dashboard,
            'list_pending_candidates': self.list_pending_candidates,
            'campaign_status': self.campaign_status,
            'end_campaign': self.end_campaign,
            'view_results': self.view_results,
            'publish_results': self.publish_results,
            'list_users': self.list_users,
            'user_report': self.user_report,
            'remove_user': self.remove_user,
            'add_admin': self.add_admin,
            'remove_admin': self.remove_admin,
            'audit_vote': self.audit_vote,
            'set_voting_period': self.set_voting_period,
            'clear_voting_period': self.confirm_clear_prompt,
        }
        self.actions = {
            'admin_dashboard': self.show_dashboard,
            'back_to_dashboard': self.show_dashboard,
            'admin_election_settings': self.election_settings,
            'admin_user_management': self.user_management,
            'quick_set_voting': self.quick_set_menu,
            'quick_now': lambda chat_id: self.quick_set(chat_id, 'now'),
            'quick_1hour': lambda chat_id: self.quick_set(chat_id, '1hour'),
            'quick_tomorrow': lambda chat_id: self.quick_set(chat_id, 'tomorrow'),
            'clear_voting_period': self.confirm_clear_prompt,
            'confirm_clear_voting': self.clear_voting_period,
            'view_election_settings': self.view_election_settings,
            'set_election_date': self.date_selection,
            'user_statistics': self.user_statistics,
            'list_all_users': self.list_users,
            'campaign_status': self.campaign_status,
        }
        # prefixed actions carry their argument after the prefix
        self.prefixed_actions = (
            ('approve_', self.approve),
            ('reject_', self.reject),
            ('select_date_', self.time_selection),
            ('select_time_', self.schedule_from_buttons),
        )

    def handles_command(self, command):
        return command in self.commands

    def handles_action(self, action):
        return action in self.actions or any(action.startswith(p) for p, _ in self.prefixed_actions)

    def on_command(self, chat_id, command, args=()):
        handler = self.commands[command]
        arity = COMMAND_ARGS.get(command, 0)
        return handler(chat_id, *tuple(args)[:arity])

    def on_action(self, chat_id, action):
        handler = self.actions.get(action)
        if handler is not None:
            return handler(chat_id)
        for prefix, prefixed_handler in self.prefixed_actions:
            if action.startswith(prefix):
                return prefixed_handler(chat_id, action[len(prefix):])

    @property
    def reply(self):
        return self.engine.reply

    # Dashboard and menus

    @require_permission(Permission.MANAGE_ELECTION)
    def show_dashboard(self, chat_id):
        self.reply(chat_id, messages.ADMIN_DASHBOARD_TEXT, messages.ADMIN_DASHBOARD)

    @require_permission(Permission.MANAGE_ELECTION)
    def election_settings(self, chat_id):
        self.reply(chat_id, messages.ELECTION_SETTINGS_TEXT, messages.ELECTION_SETTINGS)

    @require_permission(Permission.MANAGE_USERS)
    def user_management(self, chat_id):
        self.reply(chat_id, messages.USER_MANAGEMENT_TEXT, messages.USER_MANAGEMENT)

    # Candidates

    @require_permission(Permission.MANAGE_CANDIDATES)
    def list_pending_candidates(self, chat_id):
        pending = self.engine.candidates.list_pending()
        if not pending:
            return self.reply(chat_id, "📋 No pending candidate applications.")
        self.reply(chat_id, f"📋 Pending Candidate Applications ({len(pending)})")
        for candidate in pending:
            self.reply(chat_id, messages.pending_card(candidate), messages.approval_buttons(candidate.telegram_id))

    @require_permission(Permission.MANAGE_CANDIDATES)
    def approve(self, chat_id, telegram_id):
        candidate = self.engine.candidates.approve(telegram_id, actor=chat_id)
        self.reply(chat_id, f"✅ Candidate {candidate.name} approved for {candidate.position}.")
        self.engine._notify(candidate.telegram_id, messages.approved_notice(candidate), messages.PROFILE_MENU)

    @require_permission(Permission.MANAGE_CANDIDATES)
    def reject(self, chat_id, telegram_id):
        removed = self.engine.candidates.reject(telegram_id, actor=chat_id)
        self.reply(chat_id, f"❌ Candidate {removed['name']} rejected.")
        self.engine._notify(
            removed['telegram_id'],
            f"❌ Sorry, your application for {removed['position']} was not approved. You can apply again later.",
        )

    # Voting period

    @require_permission(Permission.MANAGE_ELECTION)
    def quick_set_menu(self, chat_id):
        self.reply(chat_id, messages.QUICK_SET_TEXT, messages.QUICK_SET)

    @require_permission(Permission.MANAGE_ELECTION)
    def quick_set(self, chat_id, preset):
        period = self.engine.window.quick_preset(preset, actor=chat_id)
        self.reply(chat_id, messages.period_set_text(period), messages.BACK_TO_DASHBOARD)

    @require_permission(Permission.MANAGE_ELECTION)
    def date_selection(self, chat_id):
        today = self.engine.window._now().date()
        self.reply(chat_id, "📅 Select Election Date\n\nChoose from the available dates:", messages.date_menu(today))

    @require_permission(Permission.MANAGE_ELECTION)
    def time_selection(self, chat_id, date_str):
        self.reply(chat_id, "⏰ Select Election Time (UTC)\n\nChoose the starting time:", messages.time_menu(date_str))

    @require_permission(Permission.MANAGE_ELECTION)
    def schedule_from_buttons(self, chat_id, payload):
        # "<HH:MM>_<YYYY-MM-DD>"
        time_str, _, date_str = payload.partition('_')
        period = self.engine.window.schedule(date_str, time_str, actor=chat_id)
        self.reply(chat_id, messages.period_set_text(period), messages.BACK_TO_DASHBOARD)

    @require_permission(Permission.MANAGE_ELECTION)
    def set_voting_period(self, chat_id, date_str=None, time_str=None, hours=None):
        if not date_str or not time_str:
            raise ValidationFailed("Usage: /set_voting_period YYYY-MM-DD HH:MM [hours]")
        if hours is None:
            duration = 8
        else:
            try:
                duration = int(hours)
            except ValueError:
                raise ValidationFailed("Duration must be a whole number of hours.")
        period = self.engine.window.schedule(date_str, time_str, duration, actor=chat_id)
        self.reply(chat_id, messages.period_set_text(period))

    @require_permission(Permission.MANAGE_ELECTION)
    def confirm_clear_prompt(self, chat_id):
        self.reply(chat_id, messages.CONFIRM_CLEAR_TEXT, messages.CONFIRM_CLEAR)

    @require_permission(Permission.MANAGE_ELECTION)
    def clear_voting_period(self, chat_id):
        cleared = self.engine.window.clear_window(actor=chat_id)
        text = messages.CLEARED_TEXT if cleared else messages.NOTHING_TO_CLEAR_TEXT
        self.reply(chat_id, text, messages.BACK_TO_DASHBOARD)

    @require_permission(Permission.MANAGE_ELECTION)
    def view_election_settings(self, chat_id):
        window = self.engine.window
        self.reply(chat_id, messages.settings_text(window.get_window(), window.status()), messages.BACK_TO_SETTINGS)

    # Campaigns

    @require_permission(Permission.MANAGE_ELECTION)
    def campaign_status(self, chat_id):
        self.reply(chat_id, f"📢 Campaign Status\n\n{self.engine.campaigns.status_text()}")

    @require_permission(Permission.MANAGE_ELECTION)
    def end_campaign(self, chat_id):
        if self.engine.campaigns.end_campaign():
            return self.reply(chat_id, "✅ Campaign ended.")
        self.reply(chat_id, "ℹ️ No active campaign.")

    # Results

    @require_permission(Permission.VIEW_RESULTS)
    def view_results(self, chat_id):
        ballots = self.engine.ballots
        self.reply(chat_id, messages.results_text(ballots.tally(), ballots.turnout()))

    @require_permission(Permission.VIEW_RESULTS)
    def publish_results(self, chat_id):
        state = self.engine.window.status()
        if state is WindowState.NOT_SET:
            raise WindowNotSet()
        if state is not WindowState.CLOSED:
            raise ValidationFailed("Results can only be published after voting has ended.")
        text = messages.published_results_text(self.engine.ballots.tally())
        delivered = sum(1 for telegram_id in self.engine.users.verified_ids()
                        if self.engine._notify(telegram_id, text))
        logger.info(f"Results published to {delivered} users")
        if self.engine.audit_logger is not None:
            self.engine.audit_logger.record('results_published', {'delivered': delivered}, actor=chat_id)
        self.reply(chat_id, f"✅ Results published to {delivered} verified users!")

    @require_permission(Permission.AUDIT_VOTES)
    def audit_vote(self, chat_id, vote_id=None):
        if vote_id is None or not vote_id.isdigit():
            raise ValidationFailed("Usage: /audit_vote VOTE_ID")
        report = self.engine.ballots.audit_vote(int(vote_id), actor=chat_id)
        self.reply(chat_id, messages.audit_text(report))

    # Users

    @require_permission(Permission.MANAGE_USERS)
    def list_users(self, chat_id):
        self.reply(chat_id, messages.users_text(self.engine.users.list_users()))

    @require_permission(Permission.MANAGE_USERS)
    def user_statistics(self, chat_id):
        self.reply(chat_id, messages.statistics_text(self.engine.users.statistics()))

    @require_permission(Permission.MANAGE_USERS)
    def user_report(self, chat_id):
        report = self.engine.users.department_report()
        self.reply(chat_id, messages.department_report_text(report))
        if report['departments']['other']:
            self.reply(chat_id, messages.invalid_members_alert(report['departments']['other']))

    @require_permission(Permission.MANAGE_USERS)
    def remove_user(self, chat_id, telegram_id=None):
        if not telegram_id:
            raise ValidationFailed("Usage: /remove_user TELEGRAM_ID")
        if str(telegram_id) == str(chat_id):
            raise ValidationFailed("You cannot remove yourself.")
        removed = self.engine.users.remove_user(telegram_id, actor=chat_id)
        self.reply(chat_id, f"✅ User {removed['name']} ({removed['telegram_id']}) removed.")

    @require_permission(Permission.MANAGE_USERS)
    def add_admin(self, chat_id, telegram_id=None):
        if not telegram_id:
            raise ValidationFailed("Usage: /add_admin TELEGRAM_ID")
        user = self.engine.users.set_admin(telegram_id, True, actor=chat_id)
        self.reply(chat_id, f"✅ {user.name} is now an admin.")
        self.engine._notify(user.telegram_id, "👨‍💼 You have been made an election admin. Use /admin to open the dashboard.")

    @require_permission(Permission.MANAGE_USERS)
    def remove_admin(self, chat_id, telegram_id=None):
        if not telegram_id:
            raise ValidationFailed("Usage: /remove_admin TELEGRAM_ID")
        if self.authorizer.is_main_admin(telegram_id):
            raise ValidationFailed("The main admin cannot be removed.")
        user = self.engine.users.set_admin(telegram_id, False, actor=chat_id)
        self.reply(chat_id, f"✅ {user.name} is no longer an admin.")

