"""
Non-blocking user notifications (the toast queue).
"""

import logging
from typing import Callable, List, Optional

from hconnect.models import Notification

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


class Notifier:
    """Collects notifications until the front end drains them.

    With an ``on_notify`` callback each notification is handed over as it is
    raised and nothing is queued.
    """

    def __init__(self, on_notify: Optional[Callable[[Notification], None]] = None):
        self.items: List[Notification] = []
        self.on_notify = on_notify
        self._next_id = 1

    def _push(self, level: str, message: str) -> Notification:
        note = Notification(level=level, message=message, id=self._next_id)
        self._next_id += 1
        if self.on_notify is not None:
            self.on_notify(note)
        else:
            self.items.append(note)
        return note

    def success(self, message: str) -> Notification:
        return self._push(SUCCESS, message)

    def error(self, message: str) -> Notification:
        logger.info("error notification: %s", message)
        return self._push(ERROR, message)

    def drain(self) -> List[Notification]:
        items, self.items = self.items, []
        return items

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [n.message for n in self.items if level is None or n.level == level]
