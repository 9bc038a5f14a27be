# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import subprocess
from logging import getLogger
from pathlib import Path
from typing import Optional

from attrs import frozen

from .jobs import JobSpec, sp

logger = getLogger(__name__)

STDERR_TAIL_LINES = 5


@frozen
class Outcome:
    """Terminal result of one conversion."""

    dest: Path
    success: bool
    cause: Optional[str] = None
    returncode: Optional[int] = None

    @classmethod
    def succeeded(cls, job: JobSpec, returncode: int = 0) -> "Outcome":
        return cls(dest=job.dest, success=True, returncode=returncode)

    @classmethod
    def failed(
        cls, job: JobSpec, cause: str, returncode: Optional[int] = None
    ) -> "Outcome":
        return cls(dest=job.dest, success=False, cause=cause, returncode=returncode)


def _tail(output: bytes) -> str:
    lines = output.decode(errors="replace").strip().splitlines()
    return "\n".join(lines[-STDERR_TAIL_LINES:])


class ProcessRunner:
    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def run(self, job: JobSpec) -> Outcome:
        """Run the job's invocation to completion.

        Output is captured and read to the end before returning. Every
        failure, including not being able to start the program, comes
        back as a failed Outcome rather than an exception.
        """
        logger.info("Converting %s", sp(job.source))
        logger.debug("Conversion cmd: %s", list(job.invocation))
        try:
            result = subprocess.run(
                job.invocation,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(
                "Error converting file %s: timed out after %ss",
                job.source.name,
                self.timeout,
            )
            return Outcome.failed(job, f"timed out after {self.timeout}s")
        except OSError as e:
            logger.error("Error converting file %s: %s", job.source.name, e)
            return Outcome.failed(job, str(e))

        if result.returncode != 0:
            stderr = _tail(result.stderr)
            logger.error(
                "Error converting file %s: exit status %d",
                job.source.name,
                result.returncode,
            )
            cause = f"exit status {result.returncode}"
            if stderr:
                logger.debug("stderr from %s:\n%s", job.source.name, stderr)
                cause += ": " + stderr
            return Outcome.failed(job, cause, returncode=result.returncode)

        logger.info("Created audio file %s", sp(job.dest))
        return Outcome.succeeded(job)
