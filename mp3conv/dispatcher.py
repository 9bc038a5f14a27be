# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum
from logging import getLogger
from typing import List, Set

from attrs import define

from .jobs import JobSpec, sp
from .runner import Outcome, ProcessRunner

logger = getLogger(__name__)

# The in-flight set is only ever touched from the thread calling submit()
# and drain(). The pool threads just block on their subprocess and hand an
# Outcome back through their Future.


class DispatcherException(Exception):
    pass


class TaskState(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@define(eq=False)
class TrackedTask:
    job: JobSpec
    future: Future

    @property
    def state(self) -> TaskState:
        if not self.future.done():
            return TaskState.PENDING
        if self.future.cancelled() or self.future.exception() is not None:
            return TaskState.REJECTED
        if self.future.result().success:
            return TaskState.FULFILLED
        return TaskState.REJECTED

    @property
    def outcome(self) -> Outcome:
        """The Outcome of a finished task. Blocks while the task is pending."""
        if self.future.cancelled():
            return Outcome.failed(self.job, "cancelled")
        exc = self.future.exception()
        if exc is not None:
            return Outcome.failed(self.job, repr(exc))
        return self.future.result()


class Dispatcher:
    """Runs conversions with at most max_concurrent of them in flight.

    submit() returns as soon as the job is started. When every slot is
    taken it first waits for any one task to finish, then retires all the
    tasks that have finished by then before trying again.
    """

    def __init__(self, runner: ProcessRunner, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise DispatcherException(
                f"max_concurrent must be a positive integer, not {max_concurrent}."
            )
        self.runner = runner
        self.max_concurrent = max_concurrent
        self.outcomes: List[Outcome] = []
        self._in_flight: Set[TrackedTask] = set()
        self._pool = ThreadPoolExecutor(
            max_workers=max_concurrent, thread_name_prefix="convert"
        )

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)

    def submit(self, job: JobSpec) -> TrackedTask:
        while len(self._in_flight) >= self.max_concurrent:
            logger.debug(
                "Waiting for one of %d conversions to finish.", len(self._in_flight)
            )
            wait(
                [task.future for task in self._in_flight],
                return_when=FIRST_COMPLETED,
            )
            self._reclaim()

        task = TrackedTask(job=job, future=self._pool.submit(self.runner.run, job))
        self._in_flight.add(task)
        if len(self._in_flight) > self.max_concurrent:
            raise DispatcherException(
                f"{len(self._in_flight)} conversions in flight,"
                f" limit is {self.max_concurrent}."
            )
        logger.debug("Started %s (%d in flight)", sp(job.source), len(self._in_flight))
        return task

    def drain(self) -> None:
        """Wait for every in-flight task to finish and retire them all."""
        if self._in_flight:
            logger.debug("Draining %d conversions.", len(self._in_flight))
            wait([task.future for task in self._in_flight])
        self._reclaim()
        if self._in_flight:
            raise DispatcherException(
                f"{len(self._in_flight)} conversions still in flight after drain."
            )

    def close(self) -> None:
        try:
            self.drain()
        finally:
            self._pool.shutdown(wait=True)

    def _reclaim(self) -> None:
        finished = {
            task for task in self._in_flight if task.state is not TaskState.PENDING
        }
        self._in_flight -= finished
        for task in finished:
            if not task.future.cancelled() and task.future.exception() is not None:
                logger.error(
                    "Conversion of %s raised",
                    sp(task.job.source),
                    exc_info=task.future.exception(),
                )
            self.outcomes.append(task.outcome)
        if finished:
            logger.debug(
                "Retired %d conversions, %d in flight.",
                len(finished),
                len(self._in_flight),
            )
