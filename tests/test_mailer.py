from datetime import datetime

from library_service import mailer as mailer_module
from library_service.mailer import SmtpMailer
from library_service.messages import MessageKind
from library_service.models import Reservation


def make_reservation(user_id, book_id=3):
    return Reservation(
        id=1,
        book_id=book_id,
        user_id=user_id,
        is_returned=False,
        is_deadline_missed=False,
        start_date=datetime(2024, 3, 1, 10, 0),
        finish_date=datetime(2024, 4, 1, 10, 0),
    )


def test_deadline_expired_goes_to_user_and_admins(mailer, reader, admin, transport):
    mailer.notify_deadline_expired(make_reservation(reader.id))

    user_mail = transport.to("alice@example.com")[0]
    admin_mail = transport.to("root@example.com")[0]
    assert user_mail["kind"] == MessageKind.DEADLINE_EXPIRED_USER
    assert user_mail["subject"] == MessageKind.DEADLINE_EXPIRED_USER.subject
    assert user_mail["body"] == MessageKind.DEADLINE_EXPIRED_USER.format_message(
        3, datetime(2024, 3, 1, 10, 0), datetime(2024, 4, 1, 10, 0), "alice"
    )
    assert admin_mail["body"] == MessageKind.DEADLINE_EXPIRED_ADMIN.format_message(
        3, datetime(2024, 3, 1, 10, 0), datetime(2024, 4, 1, 10, 0), "alice", "alice@example.com"
    )


def test_reminder_only_goes_to_the_user(mailer, reader, admin, transport):
    mailer.notify_deadline(make_reservation(reader.id), 4)

    assert len(transport.sent) == 1
    assert transport.sent[0]["to"] == "alice@example.com"
    assert "4 дня" in transport.sent[0]["body"]


def test_returned_goes_to_user_and_admins(mailer, reader, admin, transport):
    mailer.notify_returned(make_reservation(reader.id))

    assert sorted(m["to"] for m in transport.sent) == ["alice@example.com", "root@example.com"]
    assert {m["kind"] for m in transport.sent} == {MessageKind.RETURNED}


def test_admin_returning_own_book_gets_one_mail(mailer, admin, transport):
    mailer.notify_returned(make_reservation(admin.id))
    assert [m["to"] for m in transport.sent] == ["root@example.com"]


def test_failed_send_does_not_stop_other_recipients(mailer, users, reader, admin, transport):
    users.create_admin("second", "second@example.com", "pw")
    transport.fail_for = {"root@example.com"}

    mailer.notify_deadline_expired(make_reservation(reader.id))

    assert sorted(m["to"] for m in transport.sent) == ["alice@example.com", "second@example.com"]


def test_unknown_user_sends_nothing(mailer, admin, transport):
    mailer.notify_deadline_expired(make_reservation(user_id=777))
    mailer.notify_deadline(make_reservation(user_id=777), 2)
    mailer.notify_returned(make_reservation(user_id=777))
    assert transport.sent == []


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user, password))

    def send_message(self, msg):
        self.calls.append(("send", msg["To"], msg["Subject"], msg.get_content()))


def test_smtp_mailer_sends_plain_text(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", FakeSMTP)
    smtp = SmtpMailer("smtp.example.com", 587, "library@example.com", "secret")

    smtp.notify("alice@example.com", MessageKind.REMINDER, "Subject", "Body text")

    server = FakeSMTP.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.calls[0] == "starttls"
    assert server.calls[1] == ("login", "library@example.com", "secret")
    assert server.calls[2][:3] == ("send", "alice@example.com", "Subject")
    assert server.calls[2][3].strip() == "Body text"


def test_smtp_mailer_without_host_only_logs(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", FakeSMTP)

    SmtpMailer("").notify("alice@example.com", MessageKind.RETURNED, "Subject", "Body")

    assert FakeSMTP.instances == []
