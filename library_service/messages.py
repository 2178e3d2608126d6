"""Notification kinds, their subjects and body templates.

Bodies are built from positional arguments in a fixed order: book id, loan
start, loan finish, username, then the user's email for administrator
messages, then the inflected days-left string for reminders.
"""
import enum

DATE_FORMAT = "%d.%m.%Y %H:%M"


class MessageKind(enum.Enum):
    DEADLINE_EXPIRED_USER = (
        "Срок возврата книги истёк",
        "Здравствуйте, {3}!\n\n"
        "Срок бронирования книги с id {0} истёк.\n"
        "Книга была взята {1}, вернуть её нужно было до {2}.\n"
        "Пожалуйста, верните книгу в библиотеку как можно скорее.",
    )
    DEADLINE_EXPIRED_ADMIN = (
        "Срок возврата книги истёк",
        "Пользователь {3} ({4}) не вернул книгу с id {0} вовремя.\n"
        "Книга была взята {1}, срок возврата истёк {2}.",
    )
    REMINDER = (
        "Напоминание о возврате книги",
        "Здравствуйте, {3}!\n\n"
        "До окончания срока бронирования книги с id {0} осталось {4}.\n"
        "Книга была взята {1}, вернуть её нужно до {2}.",
    )
    RETURNED = (
        "Книга возвращена",
        "Книга с id {0} возвращена пользователем {3} ({4}).\n"
        "Срок бронирования: с {1} по {2}.",
    )

    def __init__(self, subject, template):
        self.subject = subject
        self.template = template

    def format_message(self, *args):
        return self.template.format(*(_render(a) for a in args))


def _render(value):
    if hasattr(value, "strftime"):
        return value.strftime(DATE_FORMAT)
    return value


def format_days(days):
    """
    Number of days with the Russian noun form agreeing with the numeral:
    1, 21, 101 день; 2-4, 22-24 дня; everything else дней.
    """
    last_two = abs(days) % 100
    last = last_two % 10
    if last == 1 and last_two != 11:
        return f"{days} день"
    if 2 <= last <= 4 and not 12 <= last_two <= 14:
        return f"{days} дня"
    return f"{days} дней"
