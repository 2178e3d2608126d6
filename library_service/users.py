import logging
from datetime import datetime

from sqlalchemy import or_, select
from werkzeug.security import check_password_hash, generate_password_hash

from .db import session_scope
from .models import Role, User
from .statistics import StatisticService

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, session_factory, clock=datetime.now):
        self.session_factory = session_factory
        self.clock = clock

    def create_user(self, username, email, password):
        return self._create(username, email, password, Role.USER)

    def create_admin(self, username, email, password):
        return self._create(username, email, password, Role.ADMIN)

    def _create(self, username, email, password, role):
        """
        Register an account together with its empty statistics row.
        Returns the new user, or None if the username or email is taken.
        """
        with session_scope(self.session_factory) as session:
            taken = session.execute(
                select(User.id).where(or_(User.username == username, User.email == email))
            ).first()
            if taken:
                logger.info("Signup refused: %s / %s already registered", username, email)
                return None

            user = User(
                username=username,
                email=email,
                password_hash=generate_password_hash(password),
                role=role,
            )
            session.add(user)
            StatisticService.create_for_user(session, username, self.clock())

        logger.info("Created %s account %s", role.value, username)
        return user

    def authenticate(self, username, password):
        session = self.session_factory()
        try:
            user = session.execute(
                select(User).where(User.username == username)
            ).scalar_one_or_none()
        finally:
            session.close()
        if user is None or not check_password_hash(user.password_hash, password):
            return None
        return user

    def get_user(self, user_id):
        session = self.session_factory()
        try:
            return session.get(User, user_id)
        finally:
            session.close()

    def list_admins(self):
        session = self.session_factory()
        try:
            return session.execute(
                select(User).where(User.role == Role.ADMIN)
            ).scalars().all()
        finally:
            session.close()

    def ensure_admin(self, username, email, password):
        """Create the bootstrap administrator unless the username already exists."""
        session = self.session_factory()
        try:
            existing = session.execute(
                select(User).where(User.username == username)
            ).scalar_one_or_none()
        finally:
            session.close()
        if existing:
            return existing
        logger.info("Bootstrapping administrator %s", username)
        return self.create_admin(username, email, password)
