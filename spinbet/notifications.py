"""
Email notification system.
All sends are best-effort: failures are logged and reported as False,
never raised to the caller.
"""
import asyncio
import logging
import smtplib
from html import escape
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from . import config
from .database import User, Deposit, Withdrawal
from .utils import format_naira

logger = logging.getLogger(__name__)

BRAND = "Virtual9jaBet"


def _wrap_html(body: str) -> str:
    """Wrap message body in the branded email layout."""
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 0;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background-color: #002B5B; padding: 20px; text-align: center; color: white;">
                <span style="font-size: 24px; font-weight: bold;">
                    <span style="color: #FFD700;">Virtual</span>9ja<span style="color: #FFD700;">Bet</span>
                </span>
            </div>
            <div style="padding: 20px; background-color: #f9f9f9;">
                {body}
            </div>
            <div style="margin-top: 20px; text-align: center; font-size: 12px; color: #666;">
                <p>&copy; {datetime.utcnow().year} {BRAND}. All rights reserved.</p>
                <p>This is an automated message, please do not reply.</p>
            </div>
        </div>
    </body>
    </html>
    """


def _build_message(to: str, subject: str, text: str, html: str) -> MIMEMultipart:
    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = f"{BRAND} <{config.SMTP_FROM}>"
    msg['To'] = to

    msg.attach(MIMEText(text, 'plain'))
    msg.attach(MIMEText(_wrap_html(html), 'html'))
    return msg


def _deliver(msg: MIMEMultipart):
    """Send a message over SMTP (implicit TLS on 465, STARTTLS otherwise)."""
    if config.SMTP_PORT == 465:
        with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
            server.login(config.SMTP_USER, config.SMTP_PASS)
            server.send_message(msg)
    else:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
            server.starttls()
            server.login(config.SMTP_USER, config.SMTP_PASS)
            server.send_message(msg)


async def send_email(to: str, subject: str, text: str, html: str) -> bool:
    """Send an email.

    Args:
        to: Recipient address
        subject: Subject line
        text: Plain-text body
        html: HTML body (wrapped in the branded layout)

    Returns:
        True if sent successfully, False otherwise
    """
    if not config.SMTP_USER or not config.SMTP_PASS:
        logger.warning(f"SMTP credentials not configured, skipping email to {to}: {subject}")
        return False

    try:
        msg = _build_message(to, subject, text, html)
        await asyncio.to_thread(_deliver, msg)
        logger.info(f"Email sent to {to}: {subject}")
        return True
    except Exception as e:
        logger.warning(f"Failed to send email to {to} ({subject}): {e}")
        return False


async def _send_admin(subject: str, text: str, html: str) -> bool:
    if not config.ADMIN_EMAIL:
        logger.warning(f"ADMIN_EMAIL not configured, skipping admin notice: {subject}")
        return False
    return await send_email(config.ADMIN_EMAIL, subject, text, html)


# === User notifications ===

async def notify_welcome(user: User) -> bool:
    """Welcome email with the user's referral code."""
    return await send_email(
        to=user.email,
        subject=f"Welcome to {BRAND}!",
        text=(
            f"Welcome to {BRAND}! Your account has been successfully created. "
            f"Your referral code is: {user.referral_code}"
        ),
        html=(
            f"<h2>Welcome to {BRAND}!</h2>"
            f"<p>Your account has been successfully created.</p>"
            f"<p>Your referral code is: <strong>{user.referral_code}</strong></p>"
            f"<p>Share this code with your friends and earn {format_naira(config.REFERRAL_BONUS)} "
            f"for each referral!</p>"
        ),
    )


async def notify_login(user: User) -> bool:
    """New-login security alert."""
    return await send_email(
        to=user.email,
        subject=f"New Login Alert - {BRAND}",
        text=(
            f"A new login was detected on your {BRAND} account. "
            f"If this wasn't you, please change your password immediately."
        ),
        html=(
            f"<h2>New Login Alert</h2>"
            f"<p>A new login was detected on your {BRAND} account.</p>"
            f"<p>If this wasn't you, please change your password immediately.</p>"
        ),
    )


async def notify_win(user: User, win_amount: float) -> bool:
    """Congratulate a user on a winning spin."""
    amount = format_naira(win_amount)
    return await send_email(
        to=user.email,
        subject=f"Congratulations! You won on {BRAND}!",
        text=f"Congratulations! You won {amount} on your recent game.",
        html=(
            f"<h2>Congratulations!</h2>"
            f"<p>You won <strong>{amount}</strong> on your recent game.</p>"
            f"<p>Keep playing to win more!</p>"
        ),
    )


# === Admin notifications ===

async def notify_admin_deposit(user: User, deposit: Deposit) -> bool:
    """Send the one-time code for a new deposit request to the admin."""
    amount = format_naira(deposit.amount)
    code = deposit.withdrawal_code
    return await _send_admin(
        subject=f"Deposit Request - One-time Withdrawal Code: {code}",
        text=(
            f"A user has made a deposit request. Amount: {amount}. "
            f"User ID: {user.id} ({user.username}). One-time withdrawal code: {code}"
        ),
        html=(
            f"<h2>Deposit Request</h2>"
            f"<p>A user has made a deposit request.</p>"
            f"<p><strong>Amount:</strong> {amount}</p>"
            f"<p><strong>User ID:</strong> {user.id} ({escape(user.username)})</p>"
            f"<p><strong>One-time Withdrawal Code:</strong> {code}</p>"
        ),
    )


async def notify_admin_withdrawal(user: User, withdrawal: Withdrawal, new_balance: float) -> bool:
    """Send full bank details of a withdrawal request to the admin."""
    lines = [
        ("Amount", format_naira(withdrawal.amount)),
        ("Bank", withdrawal.bank_name),
        ("Account", withdrawal.account_number),
        ("Account Name", withdrawal.account_name),
        ("Username", user.username),
        ("Email", user.email),
        ("Balance", format_naira(new_balance)),
    ]
    return await _send_admin(
        subject="Withdrawal Request",
        text="Withdrawal Request Details:\n" + "\n".join(f"{k}: {v}" for k, v in lines),
        html="<h2>Withdrawal Request</h2>" + "".join(f"<p><strong>{k}:</strong> {escape(str(v))}</p>" for k, v in lines),
    )


async def notify_admin_bank_details(user: User) -> bool:
    """Tell the admin a user saved payout bank details."""
    lines = [
        ("User ID", user.id),
        ("Username", user.username),
        ("Bank", user.bank_name),
        ("Account", user.account_number),
        ("Account Name", user.account_name),
    ]
    return await _send_admin(
        subject="User Added Bank Details",
        text="User Added Bank Details:\n" + "\n".join(f"{k}: {v}" for k, v in lines),
        html="<h2>User Added Bank Details</h2>" + "".join(f"<p><strong>{k}:</strong> {escape(str(v))}</p>" for k, v in lines),
    )
