"""Admission control for conversion tasks.

Bounds the number of concurrent tasks and allows at most one active task per
requester. The registry is the only state shared between concurrent
requests; every mutation happens under a single lock.
"""

import logging
import threading
from typing import Dict, Optional, TYPE_CHECKING

from ytmp3.domain.errors import AdmissionClosedError, AlreadyActiveError, QueueFullError

if TYPE_CHECKING:
    from ytmp3.pipeline.task import ConversionTask


class AdmissionTicket:
    """A reserved slot for one requester, later bound to its ConversionTask.

    The ticket's cancel token is handed to the task at creation, so a cancel
    issued while metadata is still being fetched is honored once the task
    starts.
    """

    def __init__(self, requester_id: str):
        self.requester_id = requester_id
        self.cancel_event = threading.Event()
        self.task: Optional["ConversionTask"] = None

    def bind(self, task: "ConversionTask"):
        self.task = task

    def cancel(self):
        if self.task is not None:
            self.task.cancel()
        else:
            self.cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()


class AdmissionController:
    """Thread-safe requester → ticket registry with a global capacity.

    Lifecycle: construct, admit/release while serving, then `close()` on
    shutdown (rejects further admissions and cancels bound tasks).

    Args:
        max_queue_size: Maximum number of simultaneously admitted requesters.
    """

    def __init__(self, max_queue_size: int):
        if max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be positive, got {max_queue_size}")
        self.max_queue_size = max_queue_size
        self._tickets: Dict[str, AdmissionTicket] = {}
        self._lock = threading.Lock()
        self._closed = False
        self.logger = logging.getLogger(__name__)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._tickets)

    @property
    def closed(self) -> bool:
        return self._closed

    def try_admit(self, requester_id: str) -> AdmissionTicket:
        """Reserves a slot. Raises AlreadyActiveError, QueueFullError or AdmissionClosedError."""
        with self._lock:
            if self._closed:
                raise AdmissionClosedError()
            if requester_id in self._tickets:
                raise AlreadyActiveError(requester_id)
            if len(self._tickets) >= self.max_queue_size:
                raise QueueFullError(self.max_queue_size)
            ticket = AdmissionTicket(requester_id)
            self._tickets[requester_id] = ticket
            active = len(self._tickets)
        self.logger.info(f"ADMIT: {requester_id} active={active}/{self.max_queue_size}")
        return ticket

    def release(self, requester_id: str) -> bool:
        with self._lock:
            ticket = self._tickets.pop(requester_id, None)
            active = len(self._tickets)
        if ticket is None:
            self.logger.warning(f"RELEASE_UNKNOWN: {requester_id}")
            return False
        self.logger.info(f"RELEASE: {requester_id} active={active}/{self.max_queue_size}")
        return True

    def ticket(self, requester_id: str) -> Optional[AdmissionTicket]:
        with self._lock:
            return self._tickets.get(requester_id)

    def lookup(self, requester_id: str) -> Optional["ConversionTask"]:
        ticket = self.ticket(requester_id)
        return ticket.task if ticket is not None else None

    def close(self):
        with self._lock:
            self._closed = True
            tickets = list(self._tickets.values())
        self.logger.info(f"ADMISSION_CLOSED: canceling {len(tickets)} active task(s)")
        for ticket in tickets:
            ticket.cancel()
