"""Ticket numbers of the form ``WB-YYYYMMDD-NNNN``."""
from __future__ import annotations

import logging
import re
import threading
from datetime import datetime
from typing import Callable, Optional

log = logging.getLogger(__name__)

DEFAULT_PREFIX = "WB"

Clock = Callable[[], datetime]


class TicketGenerator:
    """Date scoped, monotonically increasing ticket numbers.

    The counter restarts at 1 the first time a ticket is generated on a new
    calendar date. State lives in memory only; use :meth:`seed` after a
    restart to continue from the last ticket issued today.
    """

    def __init__(self, clock: Optional[Clock] = None, prefix: str = DEFAULT_PREFIX) -> None:
        self._clock: Clock = clock or datetime.now
        self._prefix = prefix
        self._pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{8}})-(\d{{4,}})$")
        self._lock = threading.Lock()
        self._counter = 0
        self._last_date: Optional[str] = None

    @property
    def prefix(self) -> str:
        return self._prefix

    def _today(self) -> str:
        return self._clock().strftime("%Y%m%d")

    def generate(self) -> str:
        with self._lock:
            current = self._today()
            if current != self._last_date:
                self._counter = 0
                self._last_date = current
            self._counter += 1
            return f"{self._prefix}-{current}-{self._counter:04d}"

    def reset_counter(self) -> None:
        with self._lock:
            self._counter = 0
            self._last_date = None

    def seed(self, last_ticket: Optional[str]) -> bool:
        """Continue numbering after ``last_ticket`` if it was issued today."""
        if not last_ticket:
            return False
        match = self._pattern.match(last_ticket.strip())
        if not match:
            log.debug("Ignoring ticket %r with unexpected format", last_ticket)
            return False
        ticket_date, counter_text = match.groups()
        with self._lock:
            if ticket_date != self._today():
                return False
            counter = int(counter_text)
            if self._last_date == ticket_date and self._counter >= counter:
                return False
            self._last_date = ticket_date
            self._counter = counter
        log.info("Ticket counter resumed at %s", last_ticket)
        return True


__all__ = ["TicketGenerator", "DEFAULT_PREFIX"]
