# pollbuddy/bot/messages.py

from datetime import timedelta

# Reply texts and inline keyboards. Keyboards are lists of rows of
# (label, action) pairs; the transport renders them.

TIME_SLOTS = [
    ["08:00", "09:00", "10:00"],
    ["11:00", "12:00", "13:00"],
    ["14:00", "15:00", "16:00"],
    ["17:00", "18:00", "19:00"],
]
DATE_CHOICES_DAYS = 14

WELCOME_NEW = (
    "Welcome to NACOSPollBuddy, {username}! 🎉\n\n"
    "Your friendly assistant for the NACOS elections.\n"
    "Let's get you registered first!\n\n"
    "Use /register to begin your registration process."
)
WELCOME_BACK = (
    "Welcome back to NACOSPollBuddy, {username}! 🎉\n\n"
    "You're already registered and verified. Choose an option below:"
)
ALREADY_REGISTERED = "✅ You are already registered and verified!"

ASK_NAME = "📝 Let's start your registration!\n\nPlease enter your full name:"
ASK_MATRIC = "🎓 Please enter your matric number (e.g., 21cg029945):"
ASK_LEVEL = "📚 Please enter your level (100-400):"
ASK_EMAIL = "📧 Please enter your school email (e.g., john.doe@stu.cu.edu.ng):"
BAD_NAME = "❌ Invalid name.\n\nPlease enter your full name using letters only."
BAD_LEVEL = "❌ Invalid level.\n\nPlease enter a level between 100-400."
BAD_EMAIL = "❌ Invalid email format.\n\nPlease use your school email: name.surname@stu.cu.edu.ng"
OTP_SENT = (
    "📧 OTP sent to your email!\n\n"
    "Please check your email (including spam folder) and reply with the "
    "6-digit OTP to complete your registration."
)
NO_PENDING_CODE = "❌ There is no pending verification code for you.\n\nUse /register to get started."
VOTER_VERIFIED = "🎉 Email verified successfully!\n\nYou are now registered and can participate in the election."
VOTER_CODE_EXPIRED = "⏰ Your OTP has expired. Please register again with /register."

CANDIDATE_VERIFIED = (
    "✅ Candidate application verified!\n\n"
    "📋 Your application has been submitted to the admin for approval.\n"
    "You will be notified once a decision is made."
)
AWAITING_CANDIDATE_CODE = "📧 Please reply with the 6-digit OTP sent to your email to confirm your application."

ASK_PHOTO = "📸 Upload Your Campaign Photo\n\nSend a clear photo of yourself for your campaign profile."
ASK_MANIFESTO = "📝 Write Your Manifesto\n\nShare your vision and plans if elected (max 500 characters):"
MANIFESTO_SAVED = "✅ Manifesto updated successfully!"
SEND_A_PHOTO = "📸 Please send a photo, not text."

BALLOT_PROMPT = "🗳️ Choose a candidate to vote for:\n\nReply with the candidate ID number."
NO_BALLOT_CANDIDATES = "📋 No candidates available for voting."
NO_APPROVED_CANDIDATES = "📋 No approved candidates available yet.\n\nCheck back later!"
REPLY_WITH_ID = "🗳️ Reply with the candidate ID number from the list."

RESULTS_NOT_READY = "⏰ Results will be available after the election ends."
NO_ELECTION_PERIOD = "❌ No election period set."
ONLY_APPROVED_CAMPAIGN = "❌ Only approved candidates can request campaigns."

GENERIC_FAILURE = "An error occurred. Please try again later."

HELP_TEXT = (
    "🆘 NACOSPollBuddy Help\n\n"
    "Available Commands:\n"
    "/start - Welcome message and main menu\n"
    "/register - Register as a voter\n"
    "/help - Show this help message\n\n"
    "How to use:\n"
    "1️⃣ Register with /register\n"
    "2️⃣ Verify your email with the OTP sent\n"
    "3️⃣ Use the menu to vote or apply as candidate"
)
ADMIN_HELP_TEXT = (
    "\n\nAdmin Commands:\n"
    "/admin - Open the admin dashboard\n"
    "/list_users - List all registered users\n"
    "/user_report - Department and level breakdown\n"
    "/list_pending_candidates - List pending applications\n"
    "/set_voting_period YYYY-MM-DD HH:MM [hours] - Set voting period (UTC)\n"
    "/clear_voting_period - Clear the voting period\n"
    "/view_results - View current vote counts\n"
    "/publish_results - Send final results to all verified users\n"
    "/campaign_status - Show the active campaign\n"
    "/end_campaign - End the active campaign\n"
    "/audit_vote VOTE_ID - Decrypt and check one ballot\n"
    "/add_admin ID, /remove_admin ID, /remove_user ID"
)


def main_menu(is_candidate=False, is_admin=False):
    rows = [
        [("🗳️ View Candidates", "view_candidates")],
        [("✅ Vote Now", "vote")],
    ]
    if is_candidate:
        rows.append([("👤 My Profile", "candidate_profile")])
    rows.append([("🎯 Apply as Candidate", "apply_candidate")])
    if is_admin:
        rows.append([("🏛️ Admin Dashboard", "admin_dashboard")])
    rows.append([("ℹ️ Help", "help_menu")])
    return rows


def main_menu_text(is_candidate=False, is_admin=False):
    lines = [
        "🏛️ Welcome to NACOSPollBuddy!\n",
        "Choose an option below:",
        "🗳️ View Candidates - See all approved candidates",
        "✅ Vote Now - Cast your vote (during voting period)",
    ]
    if is_candidate:
        lines.append("👤 My Profile - Manage your candidate profile")
    lines.append("🎯 Apply as Candidate - Run for a position")
    if is_admin:
        lines.append("🏛️ Admin Dashboard - Manage elections")
    lines.append("ℹ️ Help - Get assistance")
    return "\n".join(lines)


PROFILE_MENU = [
    [("📸 Upload Photo", "upload_photo"), ("📝 Edit Manifesto", "edit_manifesto")],
    [("📊 View Results", "view_my_results"), ("📢 Request Campaign", "request_campaign")],
    [("🔙 Back to Menu", "main_menu")],
]


def profile_text(candidate, heading="👤 Your Candidate Profile"):
    return (
        f"{heading}\n\n"
        f"🎯 Position: {candidate.position}\n"
        f"📸 Photo: {'✅ Uploaded' if candidate.picture else '❌ Not uploaded'}\n"
        f"📝 Manifesto: {'✅ Added' if candidate.manifesto else '❌ Not added'}\n"
        f"{'✅ Status: Approved' if candidate.is_approved else '⏳ Status: Pending approval'}"
    )


def approved_notice(candidate):
    return (
        f"🎉 Congratulations! Your candidacy for {candidate.position} has been approved.\n\n"
        + profile_text(candidate)
        + "\n\nComplete your profile to start campaigning!"
    )


def candidate_card(candidate, for_ballot=False):
    if for_ballot:
        return f"👤 {candidate.name}\n🎯 {candidate.position}\n🆔 Vote ID: {candidate.candidate_id}"
    manifesto = f"📝 Manifesto: {candidate.manifesto}\n" if candidate.manifesto else ""
    return (
        f"👤 {candidate.name}\n"
        f"🎯 Position: {candidate.position}\n"
        f"{manifesto}"
        f"🆔 ID: {candidate.candidate_id}"
    )


def positions_menu(positions):
    return [[(position, f"select_position_{position}")] for position in positions]


def application_submitted(position):
    return (
        f"✅ Application submitted for {position}!\n\n"
        "📧 An OTP has been sent to your email for verification.\n"
        "Please reply with the 6-digit OTP to confirm your application."
    )


def approval_request(candidate):
    return (
        "🆕 New Candidate Application\n\n"
        f"👤 Name: {candidate.name}\n"
        f"🎯 Position: {candidate.position}\n"
        f"🆔 Telegram ID: {candidate.telegram_id}"
    )


def approval_buttons(telegram_id):
    return [[("✅ Approve", f"approve_{telegram_id}"), ("❌ Reject", f"reject_{telegram_id}")]]


def vote_recorded(candidate):
    return (
        "🗳️ Vote cast successfully!\n\n"
        f"You voted for: {candidate.name}\n"
        f"Position: {candidate.position}\n\n"
        "Thank you for participating in the election! 🎉"
    )


def my_results(votes):
    return (
        "📊 Your Election Results\n\n"
        f"🗳️ Total Votes Received: {votes}\n\n"
        "Thank you for participating in the election!"
    )


def campaign_started(candidate, hours):
    return (
        f"✅ Campaign started for {candidate.name}\n\n"
        f"Your campaign will run for {hours} hours across all registered groups."
    )


def results_text(tally, turnout=None, heading="📊 Current Vote Counts"):
    if not tally:
        return f"{heading}\n\nNo approved candidates yet."
    lines = [heading]
    for position, rows in tally.items():
        lines.append(f"\n🎯 {position}")
        for row in rows:
            lines.append(f"👤 {row['name']}: {row['votes']} votes")
    if turnout is not None:
        lines.append(
            f"\n🗳️ Turnout: {turnout['votes_cast']}/{turnout['verified_voters']} "
            f"({turnout['turnout_pct']}%)"
        )
    return "\n".join(lines)


def published_results_text(tally):
    return results_text(tally, heading="🏆 NACOS ELECTION RESULTS 🏆") + \
        "\n\n🗳️ Thank you all for participating in the election!"


# Admin dashboard

ADMIN_DASHBOARD_TEXT = "🏛️ NACOS Election Admin Dashboard\n\nSelect an option to manage:"
ADMIN_DASHBOARD = [
    [("⚡ Quick Set Voting", "quick_set_voting")],
    [("🗑️ Clear Voting Period", "clear_voting_period")],
    [("⚙️ Election Settings", "admin_election_settings"), ("👥 User Management", "admin_user_management")],
    [("📢 Campaign Status", "campaign_status")],
    [("🔙 Back to Menu", "main_menu")],
]
BACK_TO_DASHBOARD = [[("🏛️ Back to Dashboard", "admin_dashboard")]]

ELECTION_SETTINGS_TEXT = "⚙️ Election Settings\n\nManage election timing and configuration:"
ELECTION_SETTINGS = [
    [("📅 Set Election Date", "set_election_date")],
    [("📋 View Current Settings", "view_election_settings")],
    [("🔙 Back to Dashboard", "admin_dashboard")],
]
BACK_TO_SETTINGS = [[("🔙 Back", "admin_election_settings")]]

USER_MANAGEMENT_TEXT = "👥 User Management\n\nManage registered users:"
USER_MANAGEMENT = [
    [("👥 List All Users", "list_all_users"), ("📊 User Statistics", "user_statistics")],
    [("🔙 Back to Dashboard", "admin_dashboard")],
]

QUICK_SET_TEXT = "⚡ Quick Set Voting Period\n\nChoose a quick option or use the full settings menu:"
QUICK_SET = [
    [("🚀 Start NOW (8h duration)", "quick_now")],
    [("🕐 Start in 1 hour (8h duration)", "quick_1hour")],
    [("📅 Tomorrow 9 AM UTC (8h duration)", "quick_tomorrow")],
    [("⚙️ Custom Settings", "admin_election_settings")],
    [("🔙 Back", "admin_dashboard")],
]

CONFIRM_CLEAR_TEXT = (
    "🗑️ Clear Voting Period\n\n"
    "Are you sure you want to clear the current voting period? This action cannot be undone."
)
CONFIRM_CLEAR = [[("✅ Yes, Clear It", "confirm_clear_voting"), ("❌ Cancel", "admin_dashboard")]]
CLEARED_TEXT = "✅ Voting period cleared successfully!\n\nYou can now set a new voting period."
NOTHING_TO_CLEAR_TEXT = "ℹ️ No voting period was set."


def date_menu(today):
    rows = [[(f"Today ({today:%a, %b %d})", f"select_date_{today:%Y-%m-%d}")]]
    for i in range(1, DATE_CHOICES_DAYS + 1):
        day = today + timedelta(days=i)
        rows.append([(f"{day:%a, %b %d}", f"select_date_{day:%Y-%m-%d}")])
    rows.append([("🔙 Back", "admin_election_settings")])
    return rows


def time_menu(date_str):
    rows = [[(slot, f"select_time_{slot}_{date_str}") for slot in row] for row in TIME_SLOTS]
    rows.append([("🔙 Back", "admin_election_settings")])
    return rows


def period_set_text(period):
    hours = round((period.end_date - period.start_date).total_seconds() / 3600)
    return (
        "✅ Voting period set!\n\n"
        f"⏰ Starts: {period.start_date:%Y-%m-%d %H:%M} UTC\n"
        f"🏁 Ends: {period.end_date:%Y-%m-%d %H:%M} UTC\n"
        f"⏱️ Duration: {hours} hours"
    )


def settings_text(period, state):
    if period is None:
        return "⚙️ Current Election Settings\n\n❌ No election period has been set yet."
    hours = round((period.end_date - period.start_date).total_seconds() / 3600)
    return (
        "⚙️ Current Election Settings\n\n"
        f"📅 Start: {period.start_date:%Y-%m-%d %H:%M} UTC\n"
        f"🏁 End: {period.end_date:%Y-%m-%d %H:%M} UTC\n"
        f"⏱️ Duration: {hours} hours\n"
        f"📍 Status: {state.value.replace('_', ' ')}"
    )


def statistics_text(stats):
    return (
        "📊 User Statistics\n\n"
        f"👥 Total Users: {stats['total_users']}\n"
        f"✅ Verified Users: {stats['verified_users']}\n"
        f"👨‍💼 Admin Users: {stats['admin_users']}\n"
        f"🎓 Unique Levels: {stats['unique_levels']}\n\n"
        f"📈 Verification Rate: {stats['verification_rate']}%"
    )


def users_text(users):
    if not users:
        return "📋 No users found."
    lines = [f"👥 All Users ({len(users)})\n"]
    for index, user in enumerate(users, start=1):
        status = "👨‍💼" if user.is_admin else ("✅" if user.is_verified else "⏳")
        lines.append(
            f"{index}. {status} {user.name}\n"
            f"   📧 {user.email}\n"
            f"   🎓 Level {user.level}\n"
            f"   🆔 {user.telegram_id}\n"
        )
    return "\n".join(lines)


def department_report_text(report):
    levels = "\n".join(f"   Level {level}: {count}" for level, count in report['levels'].items())
    return (
        "📊 NACOS Membership Report\n\n"
        f"👥 Total Users: {report['total']}\n"
        f"✅ Verified: {report['verified']}\n\n"
        "🏫 Department Breakdown:\n"
        f"💻 Computer Science (CG): {report['departments']['cg']}\n"
        f"⚙️ Computer Engineering (CH): {report['departments']['ch']}\n"
        f"❌ Invalid/Other: {report['departments']['other']}\n\n"
        "🎓 Level Distribution:\n"
        f"{levels}"
    )


def invalid_members_alert(count):
    return (
        f"⚠️ Alert: {count} users have invalid matric numbers that don't belong to "
        "CG/CH departments. Consider reviewing these registrations."
    )


def pending_card(candidate):
    return f"👤 {candidate.name}\n🎯 Position: {candidate.position}\n🆔 ID: {candidate.telegram_id}"


def audit_text(report):
    ballot = report['ballot']
    if ballot is None:
        return f"🔍 Vote {report['vote_id']}\n\n❌ Ballot could not be decrypted with the election key."
    verdict = "✅ Consistent" if report['consistent'] else "⚠️ MISMATCH"
    return (
        f"🔍 Vote {report['vote_id']}\n\n"
        f"Recorded candidate: {report['recorded_candidate_id']}\n"
        f"Ballot candidate: {ballot.get('candidate_id')}\n"
        f"Election: {ballot.get('election_id')}\n"
        f"Cast at: {ballot.get('timestamp')}\n\n"
        f"{verdict}"
    )
