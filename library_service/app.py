import atexit
import logging
import os
from datetime import datetime
from functools import wraps

from flask import Flask, jsonify, request, abort
from flask_cors import CORS
from flask_login import LoginManager, current_user, login_required, login_user, logout_user
from werkzeug.exceptions import HTTPException

from .books import BookReservedError, BookService
from .config import Config
from .db import make_session_factory
from .mailer import MailerService, SmtpMailer
from .reservations import ReservationService
from .scheduler import build_scheduler
from .statistics import StatisticService, existed_for
from .users import UserService

# ---------------------------------------------------------
# Logging
# ---------------------------------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# JSON shapes
# ---------------------------------------------------------

def book_json(book):
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "description": book.description,
        "is_reserved": book.is_reserved,
    }


def reservation_json(r):
    return {
        "id": r.id,
        "book_id": r.book_id,
        "user_id": r.user_id,
        "is_returned": r.is_returned,
        "is_deadline_missed": r.is_deadline_missed,
        "start_date": r.start_date.isoformat(),
        "finish_date": r.finish_date.isoformat(),
    }


def list_or_no_content(items, to_json):
    if not items:
        return "", 204
    return jsonify([to_json(i) for i in items]), 200


def require_admin(func):
    @wraps(func)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            logger.warning("User %s denied admin route %s", current_user.username, request.path)
            abort(403, description="Administrator role required")
        return func(*args, **kwargs)

    return wrapper


def _book_fields():
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    author = data.get("author")
    description = data.get("description")
    if not title or not author or not description:
        abort(422, description="title, author, description are required")
    return title, author, description


def _credentials():
    data = request.get_json(silent=True) or request.form
    return data.get("username"), data.get("email"), data.get("password")


# ---------------------------------------------------------
# Application factory
# ---------------------------------------------------------

def create_app(config_object=Config, mail_transport=None, clock=datetime.now):
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_object)
    CORS(app, origins=app.config["CORS_ORIGINS"], supports_credentials=True)

    session_factory = make_session_factory(
        app.config["SQLALCHEMY_DATABASE_URI"], echo=app.config["SQLALCHEMY_ECHO"]
    )
    transport = mail_transport or SmtpMailer.from_config(app.config)
    mailer = MailerService(session_factory, transport)

    users = UserService(session_factory, clock=clock)
    books = BookService(session_factory)
    statistics = StatisticService(session_factory)
    reservations = ReservationService(session_factory, mailer, clock=clock)

    app.extensions["library"] = {
        "session_factory": session_factory,
        "users": users,
        "books": books,
        "statistics": statistics,
        "reservations": reservations,
    }

    if app.config.get("ADMIN_USERNAME") and app.config.get("ADMIN_PASSWORD"):
        users.ensure_admin(
            app.config["ADMIN_USERNAME"],
            app.config.get("ADMIN_EMAIL") or f'{app.config["ADMIN_USERNAME"]}@localhost',
            app.config["ADMIN_PASSWORD"],
        )

    if app.config.get("SCHEDULER_ENABLED"):
        scheduler = build_scheduler(reservations, app.config["DEADLINE_CHECK_CRON"])
        scheduler.start()
        atexit.register(lambda: scheduler.shutdown(wait=False))
        app.extensions["library"]["scheduler"] = scheduler

    # -----------------------------------------------------
    # Authentication
    # -----------------------------------------------------

    login_manager = LoginManager(app)

    @login_manager.user_loader
    def load_user(user_id):
        return users.get_user(int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def unexpected_error(e):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    # -----------------------------------------------------
    # Health
    # -----------------------------------------------------

    @app.get("/api/health")
    def health_check():
        return jsonify({"status": "ok", "service": "library_service"}), 200

    # -----------------------------------------------------
    # Accounts
    # -----------------------------------------------------

    @app.post("/api/signup")
    def signup():
        username, email, password = _credentials()
        if not username or not email or not password:
            abort(422, description="username, email, password are required")
        if users.create_user(username, email, password) is None:
            return jsonify({"error": "Username already taken"}), 422
        return "", 201

    @app.post("/api/admin/signup")
    @require_admin
    def admin_signup():
        username, email, password = _credentials()
        if not username or not email or not password:
            abort(422, description="username, email, password are required")
        if users.create_admin(username, email, password) is None:
            return jsonify({"error": "Username already taken"}), 422
        return "", 201

    @app.post("/api/signIn")
    def sign_in():
        username, _, password = _credentials()
        user = users.authenticate(username or "", password or "")
        if user is None:
            return jsonify({"error": "Invalid username or password"}), 401
        login_user(user)
        return jsonify({"id": user.id, "username": user.username, "role": user.role.value}), 200

    @app.post("/api/logout")
    @login_required
    def logout():
        logout_user()
        return "", 200

    # -----------------------------------------------------
    # Catalog
    # -----------------------------------------------------

    @app.get("/api/book/all")
    @login_required
    def get_all_books():
        return list_or_no_content(books.get_all_books(), book_json)

    @app.get("/api/book")
    @login_required
    def get_books_by_title():
        title = request.args.get("title")
        if not title:
            abort(422, description="title is required")
        found = books.get_books_by_title(title)
        if not found:
            return jsonify({"error": "No books found"}), 404
        return jsonify([book_json(b) for b in found]), 200

    @app.get("/api/book/<int:book_id>")
    @login_required
    def get_book(book_id):
        book = books.get_book_by_id(book_id)
        if book is None:
            return jsonify({"error": "Book not found"}), 404
        return jsonify(book_json(book)), 200

    @app.post("/api/book")
    @require_admin
    def create_book():
        book = books.save_book(*_book_fields())
        return jsonify(book_json(book)), 201

    @app.put("/api/book/<int:book_id>")
    @require_admin
    def update_book(book_id):
        book = books.update_book_info(book_id, *_book_fields())
        if book is None:
            return jsonify({"error": "Book not found"}), 404
        return jsonify(book_json(book)), 200

    @app.delete("/api/book/<int:book_id>")
    @require_admin
    def delete_book(book_id):
        try:
            deleted = books.delete_book(book_id)
        except BookReservedError as e:
            return jsonify({"error": str(e)}), 409
        if not deleted:
            return jsonify({"error": "Book not found"}), 404
        return "", 200

    # -----------------------------------------------------
    # Reservations
    # -----------------------------------------------------

    @app.patch("/api/book/reservation/<int:book_id>")
    @login_required
    def reserve_book(book_id):
        reservation = reservations.reserve_book(book_id, current_user.id)
        if reservation is None:
            return jsonify({"error": "Book not found or already reserved"}), 404
        return jsonify(reservation_json(reservation)), 200

    @app.patch("/api/book/reservation/return/<int:book_id>")
    @require_admin
    def return_book(book_id):
        if not reservations.return_book(book_id):
            return jsonify({"error": "No active reservation for this book"}), 404
        return jsonify({"message": "Returned"}), 200

    @app.get("/api/book/reservation")
    @login_required
    def get_active_user_reservations():
        return list_or_no_content(
            reservations.get_active_user_reservations(current_user.id), reservation_json
        )

    @app.get("/api/book/reservation/all")
    @require_admin
    def get_all_active_reservations():
        return list_or_no_content(reservations.get_all_active_reservations(), reservation_json)

    # -----------------------------------------------------
    # Statistics
    # -----------------------------------------------------

    @app.get("/api/statistics")
    @login_required
    def get_statistic():
        """
        Own statistics for everyone; admins may look up ?username= or ?email=.
        """
        username = request.args.get("username")
        email = request.args.get("email")
        if (username or email) and not current_user.is_admin:
            abort(403, description="Only administrators can view other users' statistics")

        if username:
            stat = statistics.get_statistic_by_username(username)
        elif email:
            stat = statistics.get_statistic_by_email(email)
        else:
            stat = statistics.get_statistic_by_username(current_user.username)

        if stat is None:
            return "", 204
        return jsonify(
            {
                "inTimeReturned": str(stat.in_time_returned),
                "lateReturned": str(stat.late_returned),
                "existedFor": existed_for(stat.registration_date, clock().date()),
            }
        ), 200

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    create_app().run(host="0.0.0.0", port=port, debug=False)
