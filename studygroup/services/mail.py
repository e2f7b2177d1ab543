import smtplib
from email.mime.text import MIMEText
from typing import Optional

import structlog
from starlette.concurrency import run_in_threadpool

from studygroup.core import config
from studygroup.core.errors import EmailDeliveryError

logger = structlog.get_logger(__name__)

RESET_EMAIL_TEMPLATE = """Password Reset Request

You requested to reset your password for the Study Group Platform.

Click this link to reset your password: {link}

Or use this token manually: {token}

This link will expire in {hours} hours.

If you didn't request this, please ignore this email.

Thanks,
Study Group Platform Team
"""


class Mailer:
    def __init__(
        self,
        host: Optional[str] = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        username: Optional[str] = config.SMTP_USERNAME,
        password: Optional[str] = config.SMTP_PASSWORD,
        sender: str = config.SMTP_SENDER,
        use_tls: bool = config.SMTP_USE_TLS,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls

    def _send(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            server.send_message(msg)

    async def send(self, to_email: str, subject: str, body: str) -> None:
        if not self.host:
            logger.warning("email_not_configured", to=to_email, subject=subject)
            return

        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_email
        try:
            await run_in_threadpool(self._send, msg)
        except Exception as e:
            logger.error("email_send_failed", to=to_email, error=str(e))
            raise EmailDeliveryError() from e
        logger.info("email_sent", to=to_email, subject=subject)

    async def send_password_reset(self, to_email: str, token: str) -> None:
        link = f"{config.FRONTEND_URL}/reset-password?token={token}"
        if not self.host:
            # link carries a live token
            logger.debug("password_reset_link", to=to_email, link=link)
        body = RESET_EMAIL_TEMPLATE.format(link=link, token=token, hours=config.PASSWORD_RESET_TTL_HOURS)
        await self.send(to_email, "Password Reset - Study Group Platform", body)


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        _mailer = Mailer()
    return _mailer
