import queue
import threading
from pathlib import Path
from typing import Dict, Set

import pytest

from mp3conv.config import Settings
from mp3conv.jobs import JobSpec
from mp3conv.runner import Outcome


class GatedRunner:
    """Stand-in for ProcessRunner whose jobs finish only when released."""

    def __init__(self, fail: Set[str] = frozenset()) -> None:
        self.fail = set(fail)
        self.started: "queue.Queue[str]" = queue.Queue()
        self.current = 0
        self.max_seen = 0
        self._lock = threading.Lock()
        self._gates: Dict[str, threading.Event] = {}

    def _gate(self, name: str) -> threading.Event:
        with self._lock:
            return self._gates.setdefault(name, threading.Event())

    def release(self, name: str) -> None:
        self._gate(name).set()

    def next_started(self, timeout: float = 5) -> str:
        return self.started.get(timeout=timeout)

    def run(self, job: JobSpec) -> Outcome:
        name = job.source.stem
        with self._lock:
            self.current += 1
            self.max_seen = max(self.max_seen, self.current)
        self.started.put(name)
        released = self._gate(name).wait(timeout=10)
        with self._lock:
            self.current -= 1
        if not released:
            return Outcome.failed(job, "never released")
        if name in self.fail:
            return Outcome.failed(job, "exit status 1", returncode=1)
        return Outcome.succeeded(job)


def make_job(name: str, root: Path = Path("/media")) -> JobSpec:
    source = root / f"{name}.mp4"
    dest = root / f"{name}.mp3"
    return JobSpec(source=source, dest=dest, invocation=["ffmpeg", str(source)])


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def gated_runner() -> GatedRunner:
    return GatedRunner()
