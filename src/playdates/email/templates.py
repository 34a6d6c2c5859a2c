"""
Email templates for Pickle Play Dates game notices.

All templates use inline CSS for maximum email client compatibility.
Light theme with court-blue (#2563EB) accents.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from datetime import datetime
from html import escape

# Color constants
BG_PAGE = "#F9FAFB"
BG_CARD = "#FFFFFF"
BG_SURFACE = "#F3F4F6"
BLUE = "#2563EB"
RED = "#DC2626"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#6B7280"
BORDER = "#E5E7EB"

APP_NAME = "Pickle Play Dates"


def _base_layout(content: str, app_name: str = APP_NAME) -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: Arial, Helvetica, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 24px;">
                            <span style="font-size: 22px; font-weight: 700; color: {BLUE};">{app_name}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You are receiving this because you joined a game on {app_name}.<br>
                                Notification emails can be turned off in your profile settings.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _format_when(start_time: datetime) -> tuple[str, str]:
    """Date and time labels for a UTC start time."""
    return start_time.strftime("%A, %B %d, %Y"), start_time.strftime("%H:%M UTC")


def _details_box(
    start_time: datetime,
    venue_name: str,
    venue_address: str,
    current_participants: int | None = None,
    max_participants: int | None = None,
) -> str:
    """Render the grey game-details box."""
    date_label, time_label = _format_when(start_time)
    players = ""
    if current_participants is not None and max_participants is not None:
        players = f'<p style="margin: 4px 0;"><strong>Players:</strong> {current_participants}/{max_participants}</p>'
    return f"""\
<div style="background-color: {BG_SURFACE}; border-radius: 8px; padding: 20px; margin: 20px 0; color: {TEXT_PRIMARY}; font-size: 15px;">
    <p style="margin: 4px 0;"><strong>Date:</strong> {date_label}</p>
    <p style="margin: 4px 0;"><strong>Time:</strong> {time_label}</p>
    <p style="margin: 4px 0;"><strong>Location:</strong> {escape(venue_name)}, {escape(venue_address)}</p>
    {players}
</div>"""


def _details_text(
    start_time: datetime,
    venue_name: str,
    venue_address: str,
    current_participants: int | None = None,
    max_participants: int | None = None,
) -> str:
    date_label, time_label = _format_when(start_time)
    lines = [f"Date: {date_label}", f"Time: {time_label}", f"Location: {venue_name}, {venue_address}"]
    if current_participants is not None and max_participants is not None:
        lines.append(f"Players: {current_participants}/{max_participants}")
    return "\n".join(lines)


def game_reminder(
    display_name: str | None,
    hours_before: int,
    start_time: datetime,
    venue_name: str,
    venue_address: str,
    current_participants: int,
    max_participants: int,
) -> tuple[str, str, str]:
    """
    Reminder sent 24 hours and 1 hour before a game.

    Returns:
        (subject, html_body, text_body)
    """
    name = escape(display_name or "there")
    time_label = "1 hour" if hours_before == 1 else f"{hours_before} hours"
    subject = f"Pickleball Game Reminder - {time_label} to go!"
    content = f"""\
<h1 style="color: {BLUE}; font-size: 22px; font-weight: 700; margin: 0 0 16px 0;">Game Reminder</h1>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {name},</p>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    <strong>Your pickleball game is in {time_label}!</strong>
</p>
{_details_box(start_time, venue_name, venue_address, current_participants, max_participants)}
<p style="color: {TEXT_SECONDARY}; font-size: 15px; margin: 0;">See you on the court!</p>"""
    html_body = _base_layout(content)
    text_body = (
        f"Hi {display_name or 'there'},\n\n"
        f"Reminder: your pickleball game is in {time_label}!\n\n"
        f"{_details_text(start_time, venue_name, venue_address, current_participants, max_participants)}\n\n"
        f"See you on the court!\n\n"
        f"-- {APP_NAME}"
    )
    return subject, html_body, text_body


def game_cancelled(
    display_name: str | None,
    start_time: datetime,
    venue_name: str,
    venue_address: str,
) -> tuple[str, str, str]:
    """
    Sent to every participant when the organizer or an admin cancels a game.

    Returns:
        (subject, html_body, text_body)
    """
    name = escape(display_name or "there")
    subject = "Pickleball Game Cancelled"
    content = f"""\
<h1 style="color: {RED}; font-size: 22px; font-weight: 700; margin: 0 0 16px 0;">Game cancelled</h1>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {name},</p>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    We're sorry to let you know that your pickleball game has been cancelled.
</p>
{_details_box(start_time, venue_name, venue_address)}
<p style="color: {TEXT_SECONDARY}; font-size: 15px; margin: 0;">Check the app for other available games.</p>"""
    html_body = _base_layout(content)
    text_body = (
        f"Hi {display_name or 'there'},\n\n"
        f"We're sorry to let you know that your pickleball game has been cancelled.\n\n"
        f"{_details_text(start_time, venue_name, venue_address)}\n\n"
        f"Check the app for other available games.\n\n"
        f"-- {APP_NAME}"
    )
    return subject, html_body, text_body


def game_full(
    display_name: str | None,
    start_time: datetime,
    venue_name: str,
    venue_address: str,
    max_participants: int,
) -> tuple[str, str, str]:
    """
    Sent to the organizer when the last place in their game is taken.

    Returns:
        (subject, html_body, text_body)
    """
    name = escape(display_name or "there")
    subject = "Pickleball Game is Now Full!"
    content = f"""\
<h1 style="color: {BLUE}; font-size: 22px; font-weight: 700; margin: 0 0 16px 0;">Your game is full</h1>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {name},</p>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    Great news! Your game now has all {max_participants} players.
</p>
{_details_box(start_time, venue_name, venue_address, max_participants, max_participants)}
<p style="color: {TEXT_SECONDARY}; font-size: 15px; margin: 0;">Get ready to play!</p>"""
    html_body = _base_layout(content)
    text_body = (
        f"Hi {display_name or 'there'},\n\n"
        f"Great news! Your game now has all {max_participants} players.\n\n"
        f"{_details_text(start_time, venue_name, venue_address, max_participants, max_participants)}\n\n"
        f"Get ready to play!\n\n"
        f"-- {APP_NAME}"
    )
    return subject, html_body, text_body


def participant_removed(
    display_name: str | None,
    start_time: datetime,
    venue_name: str,
    venue_address: str,
) -> tuple[str, str, str]:
    """
    Sent to a player the organizer or an admin removed from a game.

    Returns:
        (subject, html_body, text_body)
    """
    name = escape(display_name or "there")
    subject = "You were removed from a pickleball game"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; font-weight: 700; margin: 0 0 16px 0;">Removed from game</h1>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {name},</p>
<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    The organizer has removed you from this game.
</p>
{_details_box(start_time, venue_name, venue_address)}
<p style="color: {TEXT_SECONDARY}; font-size: 15px; margin: 0;">There are plenty of other games to join in the app.</p>"""
    html_body = _base_layout(content)
    text_body = (
        f"Hi {display_name or 'there'},\n\n"
        f"The organizer has removed you from this game.\n\n"
        f"{_details_text(start_time, venue_name, venue_address)}\n\n"
        f"There are plenty of other games to join in the app.\n\n"
        f"-- {APP_NAME}"
    )
    return subject, html_body, text_body
