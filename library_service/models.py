import enum
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Enum,
    ForeignKey,
    Text,
)

Base = declarative_base()


class Role(enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class Book(Base):
    __tablename__ = "book"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    # True iff an active reservation references this book
    is_reserved = Column(Boolean, nullable=False, default=False)


class User(UserMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.USER)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN


class Reservation(Base):
    """
    One loan of one book. Never deleted; read-only once is_returned is set.
    """
    __tablename__ = "reservation"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("book.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_returned = Column(Boolean, nullable=False, default=False, index=True)
    is_deadline_missed = Column(Boolean, nullable=False, default=False)
    start_date = Column(DateTime, nullable=False)
    finish_date = Column(DateTime, nullable=False)


class Statistic(Base):
    __tablename__ = "statistic"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False)
    registration_date = Column(DateTime, nullable=False, default=datetime.now)
    late_returned = Column(Integer, nullable=False, default=0)
    in_time_returned = Column(Integer, nullable=False, default=0)
