"""Consumer side of the dispatcher: lease a task, execute the review, ack."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prgate_core.orchestrator import ReviewOrchestrator
    from prgate_store.queue import BaseDispatcher

logger = logging.getLogger(__name__)

_RETRY_DELAY_SECONDS = 30


class ReviewWorker:
    """Pulls review tasks from a dispatcher and runs them.

    ReviewOrchestrator.execute records per-review failures itself, so an
    exception reaching this loop means the infrastructure failed (database
    locked, disk full). The task is released for redelivery and the worker
    keeps running; execute's PENDING check makes the redelivery safe.
    """

    def __init__(
        self,
        orchestrator: ReviewOrchestrator,
        dispatcher: BaseDispatcher,
        lease_seconds: float = 600,
        poll_interval: float = 2.0,
        name: str = "worker",
    ):
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.lease_seconds = lease_seconds
        self.poll_interval = poll_interval
        self.name = name

    def run_once(self) -> bool:
        """Process at most one task. Returns False when the queue was empty."""
        task = self.dispatcher.dequeue(self.lease_seconds)
        if task is None:
            return False

        logger.debug("%s picked task %d (review %s, attempt %d)", self.name, task.id, task.review_id, task.attempts)
        try:
            self.orchestrator.execute(task.review_id)
        except Exception as e:
            logger.exception("%s: task %d for review %s crashed; releasing it", self.name, task.id, task.review_id)
            self.dispatcher.nack(task.id, f"{type(e).__name__}: {e}", delay=_RETRY_DELAY_SECONDS)
        else:
            self.dispatcher.ack(task.id)
        return True

    def run(self, stop_event: threading.Event) -> None:
        """Process tasks until ``stop_event`` is set, idling between empty polls."""
        logger.info("%s started", self.name)
        while not stop_event.is_set():
            try:
                busy = self.run_once()
            except Exception:
                # dequeue/ack themselves failed; back off and try again.
                logger.exception("%s: dispatcher error", self.name)
                busy = False
            if not busy:
                stop_event.wait(self.poll_interval)
        logger.info("%s stopped", self.name)
