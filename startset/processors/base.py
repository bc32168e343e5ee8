"""BaseProcessor — shared contract and subprocess runner for script processors.

Every processor is a thin state machine around the same lifecycle::

    build argv → spawn → drain stdout/stderr → wait (timeout | cancel) → classify

Subclasses only declare their extensions, build the command line and,
where the launcher has its own exit-code vocabulary, widen the success set
or describe failure codes.

Timeouts and cancellation kill the whole process tree (children first,
collected before the parent dies so none get re-parented away), then the
outcome is classified ``timeout``.  A failure to launch is ``failed``.
Nothing raised inside ``execute()`` escapes it.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import ClassVar

import psutil

from startset.exceptions import ProcessLaunchError
from startset.logging import get_logger
from startset.models import ExecutionOutcome, ExecutionStatus, ScriptCandidate, utcnow

log = get_logger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 1_048_576
_READ_CHUNK = 64 * 1024
_DRAIN_GRACE = 5.0
_KILL_WAIT = 3.0
_TRUNCATED_SUFFIX = "\n... [output truncated]"


@dataclass
class ProcessResult:
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False


# ---------------------------------------------------------------------------
# Subprocess helpers
# ---------------------------------------------------------------------------


async def _read_bounded(stream: asyncio.StreamReader | None, limit: int) -> str:
    """Drain *stream* to EOF, keeping at most *limit* bytes."""
    if stream is None:
        return ""
    kept = bytearray()
    truncated = False
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        room = limit - len(kept)
        if room > 0:
            kept.extend(chunk[:room])
        if len(chunk) > room:
            truncated = True
    text = kept.decode(errors="replace")
    return text + _TRUNCATED_SUFFIX if truncated else text


def kill_process_tree(pid: int) -> int:
    """Kill *pid* and all of its descendants.  Returns the number of processes signalled."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return 0
    try:
        procs = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        procs = []
    procs.append(parent)

    killed: list[psutil.Process] = []
    for proc in procs:
        try:
            proc.kill()
            killed.append(proc)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            log.warning("process_kill_denied", pid=proc.pid)
    psutil.wait_procs(killed, timeout=_KILL_WAIT)
    return len(killed)


async def run_process(
    argv: list[str],
    timeout: float,
    cancel_event: asyncio.Event | None = None,
    cwd: Path | None = None,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> ProcessResult:
    """Spawn *argv* and wait for it under *timeout* / *cancel_event*.

    Raises ProcessLaunchError when the program cannot be started.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=str(cwd) if cwd else None,
            env=os.environ.copy(),
        )
    except OSError as exc:
        raise ProcessLaunchError(argv, str(exc)) from exc

    readers = [
        asyncio.create_task(_read_bounded(proc.stdout, max_output_bytes)),
        asyncio.create_task(_read_bounded(proc.stderr, max_output_bytes)),
    ]
    wait_task = asyncio.create_task(proc.wait())
    cancel_task = asyncio.create_task(cancel_event.wait()) if cancel_event else None
    waiters = {wait_task} if cancel_task is None else {wait_task, cancel_task}

    timed_out = cancelled = False
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
        if wait_task not in done:
            cancelled = cancel_task is not None and cancel_task in done
            timed_out = not cancelled
            await asyncio.to_thread(kill_process_tree, proc.pid)
            await wait_task
    except asyncio.CancelledError:
        await asyncio.to_thread(kill_process_tree, proc.pid)
        wait_task.cancel()
        for task in readers:
            task.cancel()
        raise
    finally:
        if cancel_task is not None:
            cancel_task.cancel()

    # A detached grandchild can keep the pipes open after the parent exits.
    _, pending = await asyncio.wait(readers, timeout=_DRAIN_GRACE)
    for task in pending:
        task.cancel()
    stdout = readers[0].result() if readers[0] not in pending else ""
    stderr = readers[1].result() if readers[1] not in pending else ""

    return ProcessResult(
        exit_code=proc.returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        cancelled=cancelled,
    )


# ---------------------------------------------------------------------------
# BaseProcessor
# ---------------------------------------------------------------------------


class BaseProcessor(ABC):
    """Runs one family of script types.

    Class attributes:
        name            Short label used in logs.
        extensions      Lower-case extensions (with dot) handled.
        success_codes   Exit codes classified as success.
    """

    name: ClassVar[str] = "base"
    extensions: ClassVar[frozenset[str]] = frozenset()
    success_codes: ClassVar[frozenset[int]] = frozenset({0})

    def __init__(
        self,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        log_output: bool = True,
    ) -> None:
        self._max_output_bytes = max_output_bytes
        self._log_output = log_output

    def supports(self, candidate: ScriptCandidate) -> bool:
        return candidate.extension in self.extensions

    @abstractmethod
    def build_command(self, candidate: ScriptCandidate) -> list[str]:
        """Return the argv used to launch *candidate*."""

    def describe_exit(self, exit_code: int) -> str | None:
        """Human-readable meaning of a non-success exit code, if known."""
        return None

    async def execute(
        self,
        candidate: ScriptCandidate,
        timeout: float,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecutionOutcome:
        started = utcnow()
        log.info("script_started", script=candidate.filename, processor=self.name)
        try:
            argv = self.build_command(candidate)
            result = await run_process(
                argv,
                timeout=timeout,
                cancel_event=cancel_event,
                cwd=candidate.path.parent,
                max_output_bytes=self._max_output_bytes,
            )
        except Exception as exc:
            log.error("script_launch_failed", script=candidate.filename, error=str(exc))
            return ExecutionOutcome(
                candidate=candidate,
                status=ExecutionStatus.FAILED,
                started_at=started,
                finished_at=utcnow(),
                error=str(exc),
            )
        return self._classify(candidate, result, started, timeout)

    def _classify(
        self,
        candidate: ScriptCandidate,
        result: ProcessResult,
        started: datetime,
        timeout: float,
    ) -> ExecutionOutcome:
        finished = utcnow()
        error: str | None = None
        if result.timed_out or result.cancelled:
            status = ExecutionStatus.TIMEOUT
            error = "cancelled" if result.cancelled else f"timed out after {timeout:.0f} seconds"
            log.warning("script_timeout", script=candidate.filename, detail=error)
        elif result.exit_code in self.success_codes:
            status = ExecutionStatus.SUCCESS
            log.info("script_completed", script=candidate.filename, exit_code=result.exit_code)
        else:
            status = ExecutionStatus.FAILED
            meaning = self.describe_exit(result.exit_code) if result.exit_code is not None else None
            error = f"Exit code: {result.exit_code}" + (f" ({meaning})" if meaning else "")
            log.warning("script_failed", script=candidate.filename, exit_code=result.exit_code)

        if self._log_output:
            if result.stdout.strip():
                log.debug("script_stdout", script=candidate.filename, output=result.stdout.strip())
            if result.stderr.strip():
                log.debug("script_stderr", script=candidate.filename, output=result.stderr.strip())

        return ExecutionOutcome(
            candidate=candidate,
            status=status,
            started_at=started,
            finished_at=finished,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            error=error,
        )
