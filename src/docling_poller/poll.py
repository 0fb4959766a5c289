from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from docling_poller.client import ServeClient
from docling_poller.persist import persist_result
from docling_poller.results import CompletedTask
from docling_poller.retry import AttemptsExhausted, FixedBackoff, retry_until
from docling_poller.schema import FAILURE, KNOWN_STATUSES, TaskStatusResponse

logger = logging.getLogger(__name__)


class TaskFailedError(RuntimeError):
    """The service reported the task as failed. Never retried."""

    def __init__(self, task_id: str, payload: dict[str, Any]):
        super().__init__(f"Task {task_id} failed")
        self.task_id = task_id
        self.payload = payload

    def __reduce__(self):
        return type(self), (self.task_id, self.payload)


class PollTimeoutError(TimeoutError):
    def __init__(self, task_id: str, last_status: str, attempts: int):
        super().__init__(
            f"Task {task_id} did not complete within {attempts} attempt(s); last status: {last_status}"
        )
        self.task_id = task_id
        self.last_status = last_status
        self.attempts = attempts

    def __reduce__(self):
        return type(self), (self.task_id, self.last_status, self.attempts)


def poll_task(
    client: ServeClient,
    task_id: str,
    *,
    max_attempts: int = 60,
    interval_seconds: float = 5.0,
    out_dir: Path | str = "out",
    deadline_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> CompletedTask:
    """
    Poll a task until it reaches a terminal status, then fetch and persist the result.

    - success: one result call, written to <out_dir>/task_<id>_result.json
    - failure: TaskFailedError right away, no sleep
    - anything else: wait `interval_seconds` and ask again, at most `max_attempts` times
    Malformed status responses raise ProtocolError from the client; they are not "still pending".
    """
    if not task_id or not task_id.strip():
        raise ValueError("task_id is required")
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def log_attempt(attempt: int, status: TaskStatusResponse) -> None:
        logger.info(f"[{attempt}/{max_attempts}] Status: {status.task_status}")
        if status.task_meta:
            logger.info(f"  Meta: {status.task_meta}")
        if status.task_status not in KNOWN_STATUSES:
            logger.warning(f"Unrecognized task status {status.task_status!r}; treating as non-terminal")

    try:
        status, attempts = retry_until(
            lambda: client.get_status(task_id),
            lambda s: s.is_terminal,
            max_attempts=max_attempts,
            backoff=FixedBackoff(interval_seconds),
            sleep=sleep,
            clock=clock,
            deadline_seconds=deadline_seconds,
            on_attempt=log_attempt,
        )
    except AttemptsExhausted as e:
        raise PollTimeoutError(task_id, e.last_value.task_status, e.attempts) from e

    if status.task_status == FAILURE:
        logger.error(f"Task {task_id} failed: {status.raw}")
        raise TaskFailedError(task_id, status.raw)

    logger.info(f"Task {task_id} completed. Fetching results...")
    result = client.get_result(task_id)
    out_path = persist_result(result, task_id=task_id, out_dir=out_dir)
    logger.info(f"Results saved to: {out_path}")

    return CompletedTask(
        task_id=task_id,
        attempts=attempts,
        out_path=str(out_path),
        result=result,
    )
