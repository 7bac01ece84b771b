from __future__ import annotations

import logging
import random
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from mailbox_client import MailboxClient
from reply_engine import ReplyDecisionEngine
from responder import Responder, ReplyResult
from state_marker import StateMarker

logger = logging.getLogger(__name__)

DEFAULT_MIN_SLEEP_SECONDS = 45
DEFAULT_MAX_SLEEP_SECONDS = 120


@dataclass
class CycleReport:
    listed: int = 0
    counts: Counter = field(default_factory=Counter)
    results: List[ReplyResult] = field(default_factory=list)

    def record(self, result: ReplyResult) -> None:
        self.results.append(result)
        self.counts[result.state] += 1

    def summary(self) -> str:
        if not self.counts:
            return f"listed={self.listed}, nothing to do"
        parts = ", ".join(f"{state}={count}" for state, count in sorted(self.counts.items()))
        return f"listed={self.listed}, {parts}"


class PollScheduler:
    """
    Drives fetch -> decide -> respond -> sleep forever.

    A failure anywhere inside a cycle is logged and the loop moves on to the
    sleep step; a failure on one work item never stops its siblings.
    """

    def __init__(
        self,
        client: MailboxClient,
        state_marker: StateMarker,
        engine: ReplyDecisionEngine,
        responder: Responder,
        *,
        label_name: str,
        min_sleep_seconds: int = DEFAULT_MIN_SLEEP_SECONDS,
        max_sleep_seconds: int = DEFAULT_MAX_SLEEP_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        if min_sleep_seconds > max_sleep_seconds:
            raise ValueError("min_sleep_seconds must not exceed max_sleep_seconds.")
        self.client = client
        self.state_marker = state_marker
        self.engine = engine
        self.responder = responder
        self.label_name = label_name
        self.min_sleep_seconds = min_sleep_seconds
        self.max_sleep_seconds = max_sleep_seconds
        self._sleep = sleep
        self._rng = rng or random.Random()

    def next_sleep_seconds(self) -> int:
        # Inclusive on both ends
        return self._rng.randint(self.min_sleep_seconds, self.max_sleep_seconds)

    def run_cycle(self) -> CycleReport:
        report = CycleReport()
        label_id = self.state_marker.ensure_label(self.label_name)
        refs = self.client.list_unread()
        report.listed = len(refs)

        for item in self.engine.work_items(refs, label_id):
            try:
                result = self.responder.respond(item, label_id)
            except Exception as exc:
                logger.exception("Unexpected error processing message %s; continuing.", item.message.id)
                result = ReplyResult(
                    message_id=item.message.id,
                    thread_id=item.message.thread_id,
                    state="failed",
                    error=str(exc),
                )
            report.record(result)
        return report

    def run_forever(self) -> None:
        logger.info(
            "Auto-reply loop started (label=%s, sleep %s-%ss).",
            self.label_name,
            self.min_sleep_seconds,
            self.max_sleep_seconds,
        )
        while True:
            try:
                report = self.run_cycle()
                logger.info("Cycle complete: %s", report.summary())
            except Exception:
                logger.exception("Error in main loop; will retry after sleeping.")

            interval = self.next_sleep_seconds()
            logger.info("Waiting for %s seconds...", interval)
            self._sleep(interval)
