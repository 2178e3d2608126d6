import calendar
import logging
from datetime import date

from sqlalchemy import select, update

from .models import Statistic, User

logger = logging.getLogger(__name__)


def add_months(moment, months):
    """Shift a date/datetime by calendar months, clamping the day (Jan 31 + 1 -> Feb 28/29)."""
    index = moment.month - 1 + months
    year = moment.year + index // 12
    month = index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def existed_for(registration_date, today=None):
    """
    Calendar distance from registration to today as "X years, Y months, Z days".
    """
    start = registration_date.date() if hasattr(registration_date, "date") else registration_date
    today = today or date.today()
    if start > today:
        start = today

    months = (today.year - start.year) * 12 + (today.month - start.month)
    if add_months(start, months) > today:
        months -= 1
    days = (today - add_months(start, months)).days
    return f"{months // 12} years, {months % 12} months, {days} days"


class StatisticService:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    @staticmethod
    def create_for_user(session, username, registration_date):
        stat = Statistic(
            username=username,
            registration_date=registration_date,
            late_returned=0,
            in_time_returned=0,
        )
        session.add(stat)
        return stat

    @staticmethod
    def record_return(session, user_id, deadline_missed):
        """
        Bump exactly one counter for the user inside the caller's transaction.
        Returns False when the user has no statistics row.
        """
        username = session.execute(
            select(User.username).where(User.id == user_id)
        ).scalar_one_or_none()
        if username is None:
            logger.warning("Return by unknown user %s; statistics not updated", user_id)
            return False

        if deadline_missed:
            values = {"late_returned": Statistic.late_returned + 1}
        else:
            values = {"in_time_returned": Statistic.in_time_returned + 1}
        result = session.execute(
            update(Statistic)
            .where(Statistic.username == username)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("No statistics row for %s", username)
            return False
        return True

    def get_statistic_by_username(self, username):
        session = self.session_factory()
        try:
            return session.execute(
                select(Statistic).where(Statistic.username == username)
            ).scalar_one_or_none()
        finally:
            session.close()

    def get_statistic_by_email(self, email):
        session = self.session_factory()
        try:
            q = (
                select(Statistic)
                .join(User, User.username == Statistic.username)
                .where(User.email == email)
            )
            return session.execute(q).scalar_one_or_none()
        finally:
            session.close()
