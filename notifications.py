"""
Outbound account e-mail.

Mailer owns the SMTP transport; Notifier builds the four BreadBox messages and
delivers them best-effort. Routes schedule Notifier calls as background tasks,
so a failed delivery is logged and never changes the response.
"""

import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Dict, Optional

from config import Settings

logger = logging.getLogger(__name__)

BRAND = "BreadBox"


class Mailer:
    def __init__(self, host: Optional[str], port: int = 587, username: Optional[str] = None,
                 password: Optional[str] = None, from_email: Optional[str] = None, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_username,
            settings.smtp_password,
            settings.smtp_from_email,
            settings.smtp_timeout,
        )

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.host:
            logger.info("SMTP not configured, skipping mail to %s: %s", to, subject)
            return

        msg = MIMEMultipart()
        msg["From"] = f'"{BRAND}" <{self.from_email}>'
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.from_email, [to], msg.as_string())


def _layout(heading: str, body: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
      <div style="background-color: #f4c430; padding: 20px; text-align: center; color: #fff;">
        <h1>{BRAND}</h1>
      </div>
      <div style="padding: 20px; background-color: #fff;">
        <h2>{escape(heading)}</h2>
        {body}
      </div>
      <div style="text-align: center; color: #777;">
        <p>{BRAND} &copy; {datetime.now(timezone.utc).year}</p>
      </div>
    </div>
    """


class Notifier:
    def __init__(self, mailer: Mailer):
        self.mailer = mailer

    def _dispatch(self, to: str, subject: str, html: str) -> None:
        try:
            self.mailer.send(to, subject, html)
        except Exception:
            logger.exception("Email send failed: %s to %s", subject, to)

    def otp_issued(self, email: str, code: str, label: str, resend: bool = False, ttl_minutes: int = 10) -> None:
        subject = (f"Resend OTP - {BRAND} {label} Verification" if resend
                   else f"Verify Your {BRAND} {label} Account")
        intro = (f"New OTP for {label.lower()} email verification." if resend
                 else f"Thank you for choosing {BRAND}! Please use the OTP below to verify your email.")
        body = f"""
        <p>Dear {escape(label.lower())},</p>
        <p>{intro}</p>
        <div class="otp-code" style="font-size: 24px; font-weight: bold; color: #f4c430; text-align: center;">{code}</div>
        <p>Valid for {ttl_minutes} minutes. Do not share.</p>
        """
        self._dispatch(email, subject, _layout(subject, body))

    def profile_updated(self, email: str, name: str, changes: Dict[str, str], label: str) -> None:
        subject = f"{BRAND} {label} Account Updated"
        rows = "".join(f"<li><strong>{escape(k)}</strong>: {escape(str(v))}</li>" for k, v in changes.items())
        body = f"""
        <p>Dear {escape(name)},</p>
        <p>The following details of your {BRAND} account were updated:</p>
        <ul>{rows}</ul>
        <p>If you did not make this change, contact support immediately.</p>
        """
        self._dispatch(email, subject, _layout(subject, body))

    def password_changed(self, email: str, name: str, label: str) -> None:
        subject = f"{BRAND} {label} Password Updated"
        body = f"""
        <p>Dear {escape(name)},</p>
        <p>Your {BRAND} password was changed successfully.</p>
        <p>If you did not make this change, reset your password and contact support.</p>
        """
        self._dispatch(email, subject, _layout(subject, body))

    def account_deleted(self, email: str, name: str, label: str) -> None:
        subject = f"{BRAND} {label} Account Deleted"
        body = f"""
        <p>Dear {escape(name)},</p>
        <p>Your {BRAND} account and all associated data have been deleted.</p>
        <p>We are sorry to see you go.</p>
        """
        self._dispatch(email, subject, _layout(subject, body))
