import logging
import smtplib
from email.message import EmailMessage

from sqlalchemy import select

from .messages import MessageKind, format_days
from .models import Role, User

logger = logging.getLogger(__name__)


class SmtpMailer:
    """
    Plain-text SMTP transport. Without a host it only logs what it would send.
    """

    def __init__(self, host, port=587, username="", password="", use_tls=True, timeout=15):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config["MAIL_HOST"],
            port=config["MAIL_PORT"],
            username=config["MAIL_USERNAME"],
            password=config["MAIL_PASSWORD"],
            use_tls=config["MAIL_USE_TLS"],
            timeout=config["MAIL_TIMEOUT"],
        )

    def notify(self, recipient, kind, subject, body):
        if not self.host:
            logger.info("MAIL (not sent) %s to=%s subject=%r", kind.name, recipient, subject)
            return

        msg = EmailMessage()
        msg["From"] = self.username
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)
        logger.info("Sent %s mail to %s", kind.name, recipient)


class MailerService:
    """
    Resolves who gets told about a reservation event and formats the message.

    Every send is best effort: a transport failure is logged and the remaining
    recipients are still tried. Nothing here raises into the caller.
    """

    def __init__(self, session_factory, transport):
        self.session_factory = session_factory
        self.transport = transport

    def notify_deadline_expired(self, reservation):
        user, admins = self._load_people(reservation.user_id)
        if user is None:
            return
        args = (
            reservation.book_id,
            reservation.start_date,
            reservation.finish_date,
            user.username,
        )
        self._send(MessageKind.DEADLINE_EXPIRED_USER, user.email, *args)
        for admin in admins:
            self._send(MessageKind.DEADLINE_EXPIRED_ADMIN, admin.email, *args, user.email)

    def notify_deadline(self, reservation, days_left):
        user, _ = self._load_people(reservation.user_id, with_admins=False)
        if user is None:
            return
        self._send(
            MessageKind.REMINDER,
            user.email,
            reservation.book_id,
            reservation.start_date,
            reservation.finish_date,
            user.username,
            format_days(days_left),
        )

    def notify_returned(self, reservation):
        user, admins = self._load_people(reservation.user_id)
        if user is None:
            return
        recipients = [user.email] + [a.email for a in admins if a.email != user.email]
        for email in recipients:
            self._send(
                MessageKind.RETURNED,
                email,
                reservation.book_id,
                reservation.start_date,
                reservation.finish_date,
                user.username,
                user.email,
            )

    # ----------------- helpers -----------------

    def _load_people(self, user_id, with_admins=True):
        session = self.session_factory()
        try:
            user = session.get(User, user_id)
            if user is None:
                logger.warning("No user %s to notify", user_id)
                return None, []
            admins = []
            if with_admins:
                admins = session.execute(
                    select(User).where(User.role == Role.ADMIN)
                ).scalars().all()
            return user, admins
        except Exception:
            logger.exception("Could not load recipients for user %s", user_id)
            return None, []
        finally:
            session.close()

    def _send(self, kind, recipient, *args):
        body = kind.format_message(*args)
        try:
            self.transport.notify(recipient, kind, kind.subject, body)
            return True
        except Exception as e:
            logger.warning("Failed to send %s to %s: %s", kind.name, recipient, e)
            return False
