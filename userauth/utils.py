import logging
import os
import random
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from fastapi import BackgroundTasks
from jinja2 import Environment, FileSystemLoader, select_autoescape
from starlette.concurrency import run_in_threadpool

from userauth.core.config import settings
from userauth.errors import DeliveryError

logger = logging.getLogger(__name__)

template_dir = os.path.join(os.path.dirname(__file__), 'email_templates')
env = Environment(loader=FileSystemLoader(template_dir), autoescape=select_autoescape(["html"]))

# purpose -> (subject, template)
OTP_EMAILS = {
    "registration": ("Your verification code", "registration_otp.html"),
    "resend": ("Your new verification code", "resend_otp.html"),
    "email_update": ("Confirm your new email address", "email_update_otp.html"),
    "forgot_password": ("Reset your password", "forgot_password_otp.html"),
}


def generate_otp() -> str:
    return str(random.randint(1000, 9999))


class Notifier:
    """Sends HTML email through an SMTP relay."""

    def __init__(self, host: str, port: int, user: str = "", password: str = "",
                 sender: str = "", timeout: int = 15):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.timeout = timeout

    def send(self, to_email: str, subject: str, body: str) -> None:
        msg = MIMEMultipart()
        msg['From'] = self.sender
        msg['To'] = to_email
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'html', 'utf-8'))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.user:
                    server.starttls()
                    server.login(self.user, self.password)
                server.sendmail(self.sender, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send '%s' to %s: %s", subject, to_email, e)
            raise DeliveryError(error=str(e)) from e

        logger.info("Sent '%s' to %s", subject, to_email)


notifier = Notifier(
    host=settings.SMTP_SERVER,
    port=settings.SMTP_PORT,
    user=settings.SMTP_USER,
    password=settings.SMTP_PASSWORD,
    sender=settings.EMAIL_FROM,
    timeout=settings.SMTP_TIMEOUT,
)


def get_notifier() -> Notifier:
    return notifier


def render_otp_email(purpose: str, name: str, email: str, otp: str):
    subject, template_name = OTP_EMAILS[purpose]
    template = env.get_template(template_name)
    body = template.render(app_name=settings.APP_NAME, name=name, email=email, otp=otp)
    return f"{subject} - {settings.APP_NAME}", body


def send_otp_email(sender: Notifier, purpose: str, name: str, email: str, otp: str) -> None:
    subject, body = render_otp_email(purpose, name, email, otp)
    sender.send(email, subject, body)


async def notify_required(sender: Notifier, purpose: str, name: str, email: str, otp: str) -> None:
    """Deliver an OTP before responding; a DeliveryError reaches the caller."""
    await run_in_threadpool(send_otp_email, sender, purpose, name, email, otp)


def _send_best_effort(sender: Notifier, purpose: str, name: str, email: str, otp: str) -> None:
    try:
        send_otp_email(sender, purpose, name, email, otp)
    except DeliveryError as e:
        logger.warning("Best-effort %s email to %s was not delivered: %s", purpose, email, e.error)


def notify_best_effort(background_tasks: BackgroundTasks, sender: Notifier, purpose: str,
                       name: str, email: str, otp: str) -> None:
    """Deliver an OTP after the response has been sent; failures are only logged."""
    background_tasks.add_task(_send_best_effort, sender, purpose, name, email, otp)
