from .background import *

__all__ = [
    "send_time_entries_task",
    "dispatch_time_entries_mail",
]
