"""Reservation lifecycle and the deadline sweep.

A book is a single physical copy. ``Book.is_reserved`` is true exactly while
one reservation with ``is_returned = False`` points at it. Both transitions
that touch that pairing (reserve and return) run as one transaction built on
conditional UPDATEs, so concurrent callers on the same book are serialized by
the database rather than by in-process locks.

Reservation states::

    active ──sweep──> active, deadline missed
      │                      │
      └────── return ────────┴──> returned (terminal)
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update

from .db import session_scope
from .models import Book, Reservation
from .statistics import StatisticService, add_months

logger = logging.getLogger(__name__)

LOAN_PERIOD_MONTHS = 1
REMINDER_WINDOW_DAYS = 5


@dataclass
class SweepResult:
    checked: int = 0
    flagged: int = 0
    reminded: int = 0
    failed: int = 0


class ReservationService:
    def __init__(self, session_factory, mailer, clock=datetime.now):
        self.session_factory = session_factory
        self.mailer = mailer
        self.clock = clock

    # ----------------- reserve / return -----------------

    def reserve_book(self, book_id, user_id):
        """
        Reserve a free book for a user.

        Returns the new Reservation, or None when the book does not exist or
        is already reserved. Nothing is written in the None case.
        """
        now = self.clock()
        with session_scope(self.session_factory) as session:
            # check-and-set: only one caller can flip the flag from False
            claimed = session.execute(
                update(Book)
                .where(Book.id == book_id, Book.is_reserved.is_(False))
                .values(is_reserved=True)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                exists = session.execute(
                    select(Book.id).where(Book.id == book_id)
                ).scalar_one_or_none()
                logger.info(
                    "Reservation refused: book %s %s",
                    book_id,
                    "already reserved" if exists is not None else "not found",
                )
                return None

            reservation = Reservation(
                book_id=book_id,
                user_id=user_id,
                is_returned=False,
                is_deadline_missed=False,
                start_date=now,
                finish_date=add_months(now, LOAN_PERIOD_MONTHS),
            )
            session.add(reservation)

        logger.info(
            "Book %s reserved by user %s until %s",
            book_id,
            user_id,
            reservation.finish_date.isoformat(),
        )
        return reservation

    def return_book(self, book_id):
        """
        Close the active reservation of a book.

        Statistics, the reservation flag and the book flag are committed
        together. Late/on-time is whatever is_deadline_missed says at this
        moment; it is not recomputed from the clock. Returns False when the
        book has no active reservation.
        """
        with session_scope(self.session_factory) as session:
            reservation = session.execute(
                select(Reservation)
                .where(Reservation.book_id == book_id, Reservation.is_returned.is_(False))
                .with_for_update()
            ).scalar_one_or_none()
            if reservation is None:
                logger.info("Return refused: no active reservation for book %s", book_id)
                return False

            closed = session.execute(
                update(Reservation)
                .where(Reservation.id == reservation.id, Reservation.is_returned.is_(False))
                .values(is_returned=True)
                .execution_options(synchronize_session=False)
            ).rowcount
            if closed != 1:
                # a concurrent return got there first
                return False

            session.refresh(reservation)
            late = bool(reservation.is_deadline_missed)
            StatisticService.record_return(session, reservation.user_id, late)

            session.execute(
                update(Book)
                .where(Book.id == book_id)
                .values(is_reserved=False)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Book %s returned by user %s (%s)",
            book_id,
            reservation.user_id,
            "late" if late else "on time",
        )
        self.mailer.notify_returned(reservation)
        return True

    # ----------------- queries -----------------

    def get_active_user_reservations(self, user_id):
        session = self.session_factory()
        try:
            q = (
                select(Reservation)
                .where(Reservation.user_id == user_id, Reservation.is_returned.is_(False))
                .order_by(Reservation.id)
            )
            return session.execute(q).scalars().all()
        finally:
            session.close()

    def get_all_active_reservations(self):
        session = self.session_factory()
        try:
            q = (
                select(Reservation)
                .where(Reservation.is_returned.is_(False))
                .order_by(Reservation.id)
            )
            return session.execute(q).scalars().all()
        finally:
            session.close()

    # ----------------- deadline sweep -----------------

    def update_missed_deadlines(self):
        """
        Flag overdue reservations and remind users whose deadline is near.

        Overdue and not yet flagged: set is_deadline_missed, tell the user and
        every admin. Otherwise, deadline within REMINDER_WINDOW_DAYS: remind
        the user, no write. A failure on one reservation is logged and the
        sweep moves on.
        """
        now = self.clock()
        result = SweepResult()
        active = self.get_all_active_reservations()
        logger.info("Deadline sweep started: %d active reservations", len(active))

        for reservation in active:
            result.checked += 1
            try:
                if reservation.finish_date < now:
                    if not reservation.is_deadline_missed and self._flag_missed(reservation):
                        result.flagged += 1
                        self.mailer.notify_deadline_expired(reservation)
                    continue

                if reservation.finish_date < now + timedelta(days=REMINDER_WINDOW_DAYS):
                    days_left = (reservation.finish_date.date() - now.date()).days
                    self.mailer.notify_deadline(reservation, days_left)
                    result.reminded += 1
            except Exception:
                result.failed += 1
                logger.exception("Deadline sweep failed for reservation %s", reservation.id)

        logger.info(
            "Deadline sweep done: checked=%d flagged=%d reminded=%d failed=%d",
            result.checked,
            result.flagged,
            result.reminded,
            result.failed,
        )
        return result

    def _flag_missed(self, reservation):
        # re-checked in the WHERE clause: a return or an earlier sweep wins
        with session_scope(self.session_factory) as session:
            flipped = session.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation.id,
                    Reservation.is_returned.is_(False),
                    Reservation.is_deadline_missed.is_(False),
                )
                .values(is_deadline_missed=True)
                .execution_options(synchronize_session=False)
            ).rowcount
        if flipped == 1:
            reservation.is_deadline_missed = True
            logger.info(
                "Reservation %s (book %s) missed its deadline %s",
                reservation.id,
                reservation.book_id,
                reservation.finish_date.isoformat(),
            )
            return True
        return False
