# pollbuddy/transport/mailer.py
"""Outbound email for verification codes.

SMTP delivery through aiosmtplib. The bot handles requests synchronously,
so each send runs its own short event loop.

Configuration comes from the Flask config (see ``pollbuddy/__init__.py``):
SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_USE_TLS, SMTP_FROM.
"""

import asyncio
import logging
from email.message import EmailMessage

import aiosmtplib

logger = logging.getLogger(__name__)

OTP_SUBJECT = "NACOSPollBuddy OTP Verification"


class Mailer:
    def __init__(self, host, port=587, username='', password='', use_tls=True, sender=None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or username

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config['SMTP_HOST'],
            port=config['SMTP_PORT'],
            username=config['SMTP_USER'],
            password=config['SMTP_PASS'],
            use_tls=config['SMTP_USE_TLS'],
            sender=config['SMTP_FROM'],
        )

    def _build_message(self, to, subject, body):
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    async def _send_async(self, msg):
        kwargs = {
            "hostname": self.host,
            "port": self.port,
            "start_tls": self.use_tls,
        }
        if self.username and self.password:
            kwargs["username"] = self.username
            kwargs["password"] = self.password
        await aiosmtplib.send(msg, **kwargs)

    def send(self, to: str, subject: str, body: str) -> bool:
        """Send one message; False when delivery failed."""
        msg = self._build_message(to, subject, body)
        try:
            asyncio.run(self._send_async(msg))
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False
        logger.info(f"Email sent to {to}: {subject}")
        return True

    def send_otp(self, to: str, code: str, ttl_minutes: int = 5) -> bool:
        body = (
            f"Your OTP for NACOSPollBuddy is: {code}. "
            f"It expires in {ttl_minutes} minutes. "
            "Simply reply with this 6-digit code to verify."
        )
        return self.send(to, OTP_SUBJECT, body)
