from datetime import datetime, timedelta

import pytest

from library_service.db import make_session_factory, session_scope
from library_service.mailer import MailerService
from library_service.models import Book, Reservation
from library_service.reservations import ReservationService
from library_service.statistics import StatisticService
from library_service.users import UserService

NOW = datetime(2024, 3, 10, 12, 0)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingTransport:
    """Stands in for SmtpMailer; remembers every message, can fail on demand."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def notify(self, recipient, kind, subject, body):
        if recipient in self.fail_for:
            raise ConnectionError(f"SMTP refused {recipient}")
        self.sent.append({"to": recipient, "kind": kind, "subject": subject, "body": body})

    def to(self, recipient):
        return [m for m in self.sent if m["to"] == recipient]


@pytest.fixture
def session_factory(tmp_path):
    return make_session_factory(f"sqlite:///{tmp_path / 'library.db'}")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def mailer(session_factory, transport):
    return MailerService(session_factory, transport)


@pytest.fixture
def users(session_factory, clock):
    return UserService(session_factory, clock=clock)


@pytest.fixture
def statistics(session_factory):
    return StatisticService(session_factory)


@pytest.fixture
def service(session_factory, mailer, clock):
    return ReservationService(session_factory, mailer, clock=clock)


@pytest.fixture
def reader(users):
    return users.create_user("alice", "alice@example.com", "alice-pass")


@pytest.fixture
def admin(users):
    return users.create_admin("root", "root@example.com", "root-pass")


@pytest.fixture
def add_book(session_factory):
    def _add(title="Clean Code", reserved=False):
        with session_scope(session_factory) as session:
            book = Book(
                title=title,
                author="Robert C. Martin",
                description="Craftsmanship",
                is_reserved=reserved,
            )
            session.add(book)
        return book

    return _add


@pytest.fixture
def add_reservation(session_factory, add_book):
    """Put a book on loan directly, with an arbitrary deadline."""

    def _add(user, finish_date, start_date=None, missed=False):
        book = add_book(reserved=True)
        with session_scope(session_factory) as session:
            reservation = Reservation(
                book_id=book.id,
                user_id=user.id,
                is_returned=False,
                is_deadline_missed=missed,
                start_date=start_date or finish_date - timedelta(days=30),
                finish_date=finish_date,
            )
            session.add(reservation)
        return reservation

    return _add


@pytest.fixture
def load(session_factory):
    def _load(model, pk):
        session = session_factory()
        try:
            return session.get(model, pk)
        finally:
            session.close()

    return _load
