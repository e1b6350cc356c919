"""
Message bodies for reminder, welcome and SMS notifications.
"""

from datetime import datetime, timezone
from html import escape
from typing import Optional
from zoneinfo import ZoneInfo

from codesync.database.models import Contest

WELCOME_SMS = (
    "Welcome to CodeSync! You're subscribed to contest reminders. "
    "You'll get notifications 24h and 1h before contests start. - CodeSync"
)

_STYLE = """
        body { margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; background-color: #f4f4f4; color: #333; }
        .main { max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 8px; overflow: hidden; }
        .header { background-color: %(header)s; padding: 30px; text-align: center; color: #ffffff; }
        .header h1 { margin: 0; font-size: 2.5rem; letter-spacing: 2px; }
        .tag { background-color: %(tag)s; padding: 8px 18px; display: inline-block; margin-top: 15px; font-size: 0.8rem; font-weight: 700; text-transform: uppercase; border-radius: 4px; }
        .content { padding: 40px 30px; text-align: center; }
        .info-block { background-color: #f9f9f9; border: 1px solid #e0e0e0; padding: 20px 25px; margin: 15px 0; border-radius: 6px; text-align: left; }
        .label { color: #888; font-size: 0.85rem; text-transform: uppercase; font-weight: 600; }
        .value { color: #333; font-weight: 700; font-size: 1.1rem; }
        .countdown { color: %(header)s; font-size: 2.8rem; font-weight: 900; }
        .button { background-color: %(button)s; color: #ffffff; padding: 18px 50px; text-decoration: none; font-weight: 700; display: inline-block; border-radius: 6px; }
        .footer { background-color: #1a1a1a; padding: 30px; text-align: center; color: #cccccc; font-size: 0.8rem; }
"""


def format_start_time(start_time: datetime, tz: Optional[str] = None) -> str:
    """Render a start instant for humans, e.g. "Tue, Oct 20, 2026, 2:35 PM UTC"."""
    zone = ZoneInfo(tz) if tz else timezone.utc
    local = start_time.astimezone(zone)
    hour = local.strftime("%I").lstrip("0")
    return f"{local.strftime('%a, %b %d, %Y')}, {hour}:{local.strftime('%M %p %Z')}"


def _page(title: str, colors: dict[str, str], header: str, content: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>{_STYLE % colors}</style>
</head>
<body>
    <div class="main">
        <div class="header">
            <h1>CodeSync</h1>
            {header}
        </div>
        <div class="content">
{content}
        </div>
        <div class="footer">CodeSync - Contest reminders for competitive programmers</div>
    </div>
</body>
</html>
"""


def far_reminder_subject(contest: Contest) -> str:
    return f"Contest Reminder: {contest.name}"


def far_reminder_email(contest: Contest, hours: int, tz: Optional[str] = None) -> str:
    """Day-ahead reminder body."""
    return _page(
        title="Contest Reminder - CodeSync",
        colors={"header": "#1a1a1a", "tag": "#ffaa00", "button": "#007bff"},
        header=f'<div class="tag">Starting in {hours} hours</div>',
        content=f"""            <h2>{escape(contest.name)}</h2>
            <div class="info-block">
                <div class="label">Platform</div>
                <div class="value">{escape(contest.platform)}</div>
            </div>
            <div class="info-block">
                <div class="label">Start time</div>
                <div class="value">{format_start_time(contest.start_time, tz)}</div>
            </div>
            <a href="{escape(contest.url)}" class="button">View Contest</a>""",
    )


def near_reminder_subject(contest: Contest) -> str:
    return f"Starting Soon: {contest.name}"


def near_reminder_email(contest: Contest, display_time: str) -> str:
    """Starting-soon reminder body."""
    return _page(
        title="Contest Starting Soon! - CodeSync",
        colors={"header": "#e74c3c", "tag": "#c0392b", "button": "#e74c3c"},
        header=f'<div class="tag">Starting in {display_time}</div>',
        content=f"""            <h2>{escape(contest.name)}</h2>
            <div class="info-block">
                <div class="countdown">{display_time.upper()}</div>
                <div class="label">until contest starts on {escape(contest.platform)}</div>
            </div>
            <a href="{escape(contest.url)}" class="button">Join Contest Now</a>""",
    )


def far_reminder_sms(contest: Contest, hours: int, tz: Optional[str] = None) -> str:
    return (
        f"Contest in ~{hours}h: {contest.name} on {contest.platform} "
        f"at {format_start_time(contest.start_time, tz)}. {contest.url}"
    )


def near_reminder_sms(
    contest: Contest, display_time: str, tz: Optional[str] = None
) -> str:
    return (
        f"Starting in ~{display_time}: {contest.name} on {contest.platform} "
        f"at {format_start_time(contest.start_time, tz)}. {contest.url}"
    )


WELCOME_SUBJECT = "Welcome to CodeSync!"
ALREADY_SUBSCRIBED_SUBJECT = "CodeSync: You are already subscribed!"


def welcome_email() -> str:
    return _page(
        title="Welcome to CodeSync!",
        colors={"header": "#007bff", "tag": "#0056b3", "button": "#007bff"},
        header="<p>Your Competitive Programming Companion</p>",
        content="""            <h2>Welcome Aboard!</h2>
            <p>You're now subscribed to CodeSync. You'll get timely reminders for coding contests from top platforms.</p>
            <div class="info-block">
                <div class="label">Smart Reminders</div>
                <div class="value">Get notified 24 hours and 1 hour before contests begin.</div>
            </div>
            <div class="info-block">
                <div class="label">Multi-Platform Coverage</div>
                <div class="value">Codeforces, CodeChef and LeetCode, all in one place.</div>
            </div>""",
    )


def already_subscribed_email() -> str:
    return _page(
        title="You're Already Subscribed! - CodeSync",
        colors={"header": "#f39c12", "tag": "#e67e22", "button": "#f39c12"},
        header="<p>Competitive Programming Companion</p>",
        content="""            <h2>You're Already Subscribed!</h2>
            <p>You're already on the CodeSync reminder list.</p>
            <p>If you meant to update your preferences, we've updated them based on your recent submission.</p>""",
    )
