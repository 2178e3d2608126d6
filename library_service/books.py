import logging

from sqlalchemy import select

from .db import session_scope
from .models import Book

logger = logging.getLogger(__name__)


class BookReservedError(Exception):
    """Raised when deleting a book that is currently on loan."""


class BookService:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get_all_books(self):
        session = self.session_factory()
        try:
            return session.execute(select(Book).order_by(Book.id)).scalars().all()
        finally:
            session.close()

    def get_book_by_id(self, book_id):
        session = self.session_factory()
        try:
            return session.get(Book, book_id)
        finally:
            session.close()

    def get_books_by_title(self, title):
        session = self.session_factory()
        try:
            q = select(Book).where(Book.title.ilike(f"%{title}%")).order_by(Book.id)
            return session.execute(q).scalars().all()
        finally:
            session.close()

    def save_book(self, title, author, description):
        with session_scope(self.session_factory) as session:
            book = Book(title=title, author=author, description=description, is_reserved=False)
            session.add(book)
        logger.info("Added book %s %r", book.id, title)
        return book

    def update_book_info(self, book_id, title, author, description):
        """
        Replace the descriptive fields of a book. Availability is left alone.
        Returns the updated book, or None if there is no such book.
        """
        with session_scope(self.session_factory) as session:
            book = session.execute(
                select(Book).where(Book.id == book_id).with_for_update()
            ).scalar_one_or_none()
            if book is None:
                return None
            book.title = title
            book.author = author
            book.description = description
        logger.info("Updated book %s", book_id)
        return book

    def delete_book(self, book_id):
        with session_scope(self.session_factory) as session:
            book = session.execute(
                select(Book).where(Book.id == book_id).with_for_update()
            ).scalar_one_or_none()
            if book is None:
                return False
            if book.is_reserved:
                raise BookReservedError(f"Book {book_id} is reserved")
            session.delete(book)
        logger.info("Deleted book %s", book_id)
        return True
