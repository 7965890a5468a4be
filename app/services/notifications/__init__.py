from .time_entries_mailer import TimeEntriesMailer

__all__ = [
    "TimeEntriesMailer",
]
