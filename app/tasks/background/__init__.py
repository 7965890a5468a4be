from .time_entries_mail_sender import (
    send_time_entries_task,
    dispatch_time_entries_mail,
)

__all__ = [
    "send_time_entries_task",
    "dispatch_time_entries_mail",
]
