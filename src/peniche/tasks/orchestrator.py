"""Concurrent execution of registry commands with tagged, interleaved output.

Each command runs as its own asyncio task: the child process is spawned
with piped stdout/stderr, both pipes are forwarded line by line to their
sinks concurrently, and the task finishes once both pipes hit EOF and the
process has exited. A failing command never affects its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Protocol, Sequence

from rich.console import Console
from rich.text import Text

from ..core.exceptions import ProcessExitError, ProcessSpawnError
from ..core.logging_utils import log_event
from ..core.process_termination import terminate_child
from .commands import Command, ResolvedCommand
from .registry import CommandRegistry
from .tagging import command_tag, tagged_line

DEFAULT_GRACE_SECONDS = 5.0
DEFAULT_STREAM_LIMIT = 1024 * 1024
_NEW_SESSION = os.name != "nt"


class CommandStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class CommandResult:
    name: str
    status: CommandStatus
    returncode: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (CommandStatus.SUCCEEDED, CommandStatus.SKIPPED)


@dataclass(frozen=True)
class BatchResult:
    results: list[CommandResult] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unknown and all(result.ok for result in self.results)


class OutputSink(Protocol):
    def write(self, name: str, line: str) -> None:
        """Emit one line of output produced by command ``name``."""


class ConsoleSink:
    """Print lines to a rich console behind the command's colored tag."""

    def __init__(self, console: Console) -> None:
        self._console = console
        self._tags: dict[str, Text] = {}

    def write(self, name: str, line: str) -> None:
        tag = self._tags.get(name)
        if tag is None:
            tag = self._tags[name] = command_tag(name)
        self._console.print(tagged_line(tag, line), soft_wrap=True, highlight=False)


class TaskOrchestrator:
    def __init__(
        self,
        registry: CommandRegistry,
        *,
        os_name: Optional[str] = None,
        stdout_sink: Optional[OutputSink] = None,
        stderr_sink: Optional[OutputSink] = None,
        timeout_seconds: Optional[float] = None,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
        base_env: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._registry = registry
        self._os_name = os_name
        self._stdout_sink = stdout_sink or ConsoleSink(Console())
        self._stderr_sink = stderr_sink or ConsoleSink(Console(stderr=True))
        self._timeout_seconds = timeout_seconds
        self._grace_seconds = grace_seconds
        self._stream_limit = stream_limit
        self._base_env = dict(os.environ if base_env is None else base_env)
        self._logger = logger or logging.getLogger(__name__)

    def _environment(self, resolved: ResolvedCommand) -> dict[str, str]:
        env = dict(self._base_env)
        env.update(self._registry.base_env)
        env.update(resolved.env)
        return env

    async def _spawn(self, resolved: ResolvedCommand) -> asyncio.subprocess.Process:
        argv = resolved.argv()
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(resolved.working_dir),
                env=self._environment(resolved),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_NEW_SESSION,
                limit=self._stream_limit,
            )
        except OSError as exc:
            raise ProcessSpawnError(
                f"Failed to launch '{resolved.name}' ({argv[0]} in "
                f"{resolved.working_dir}): {exc}",
                command=resolved.name,
                program=argv[0],
            ) from exc

    async def _forward(
        self,
        name: str,
        stream: Optional[asyncio.StreamReader],
        sink: OutputSink,
        channel: str,
    ) -> None:
        if stream is None:
            return
        pending = bytearray()
        # Set while skipping the rest of an over-long line.
        dropping = False
        while True:
            chunk = await stream.read(self._stream_limit)
            if not chunk:
                break
            pending.extend(chunk)
            while True:
                end = pending.find(b"\n")
                if end < 0:
                    break
                raw = bytes(pending[:end])
                del pending[: end + 1]
                if dropping:
                    dropping = False
                elif len(raw) > self._stream_limit:
                    self._line_too_long(name, channel)
                else:
                    self._emit(name, sink, raw)
            if len(pending) > self._stream_limit:
                if not dropping:
                    self._line_too_long(name, channel)
                dropping = True
                pending.clear()
        if pending and not dropping:
            self._emit(name, sink, bytes(pending))

    @staticmethod
    def _emit(name: str, sink: OutputSink, raw: bytes) -> None:
        sink.write(name, raw.decode("utf-8", errors="replace").rstrip("\r"))

    def _line_too_long(self, name: str, channel: str) -> None:
        log_event(
            self._logger,
            logging.WARNING,
            "command.output.line_too_long",
            command=name,
            stream=channel,
            limit=self._stream_limit,
        )

    async def _drain_and_wait(
        self, name: str, process: asyncio.subprocess.Process
    ) -> int:
        await asyncio.gather(
            self._forward(name, process.stdout, self._stdout_sink, "stdout"),
            self._forward(name, process.stderr, self._stderr_sink, "stderr"),
        )
        return await process.wait()

    async def execute_one(self, command: Command) -> CommandResult:
        """Run ``command`` to completion and report how it ended.

        Raises ProcessSpawnError when the program cannot be launched. A
        non-zero exit is logged and reported, not raised.
        """
        resolved = command.resolve(self._os_name, base_dir=self._registry.base_dir)
        if resolved.is_empty:
            log_event(
                self._logger,
                logging.WARNING,
                "command.skipped",
                command=resolved.name,
                reason="no command line for this platform",
            )
            return CommandResult(
                resolved.name,
                CommandStatus.SKIPPED,
                error="no command line for this platform",
            )

        process = await self._spawn(resolved)
        log_event(
            self._logger,
            logging.INFO,
            "command.started",
            command=resolved.name,
            pid=process.pid,
            cwd=resolved.working_dir,
        )
        try:
            if self._timeout_seconds is None:
                returncode = await self._drain_and_wait(resolved.name, process)
            else:
                returncode = await asyncio.wait_for(
                    self._drain_and_wait(resolved.name, process),
                    timeout=self._timeout_seconds,
                )
        except asyncio.TimeoutError:
            returncode = await self._stop(process, resolved.name)
            log_event(
                self._logger,
                logging.WARNING,
                "command.timed_out",
                command=resolved.name,
                timeout_seconds=self._timeout_seconds,
            )
            return CommandResult(
                resolved.name,
                CommandStatus.TIMED_OUT,
                returncode=returncode,
                error=f"timed out after {self._timeout_seconds}s",
            )
        except asyncio.CancelledError:
            await self._stop(process, resolved.name)
            raise

        if returncode != 0:
            exit_error = ProcessExitError(resolved.name, returncode)
            log_event(
                self._logger,
                logging.WARNING,
                "command.failed",
                command=resolved.name,
                returncode=returncode,
                exc=exit_error,
            )
            return CommandResult(
                resolved.name,
                CommandStatus.FAILED,
                returncode=returncode,
                error=str(exit_error),
            )
        log_event(
            self._logger, logging.INFO, "command.succeeded", command=resolved.name
        )
        return CommandResult(resolved.name, CommandStatus.SUCCEEDED, returncode=0)

    async def _stop(
        self, process: asyncio.subprocess.Process, name: str
    ) -> Optional[int]:
        return await terminate_child(
            process,
            grace_seconds=self._grace_seconds,
            own_group=_NEW_SESSION,
            logger=self._logger,
            event_prefix=f"command.{name}",
        )

    async def _execute_isolated(self, command: Command) -> CommandResult:
        try:
            return await self.execute_one(command)
        except ProcessSpawnError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "command.spawn_failed",
                command=command.name,
                exc=exc,
            )
            return CommandResult(command.name, CommandStatus.FAILED, error=str(exc))
        except Exception as exc:
            self._logger.exception("Command '%s' crashed", command.name)
            return CommandResult(command.name, CommandStatus.FAILED, error=str(exc))

    async def execute_many(self, names: Sequence[str]) -> BatchResult:
        """Run every known command in ``names`` concurrently.

        Unknown names are reported and skipped. Returns once every launched
        command has finished.
        """
        unknown: list[str] = []
        tasks: list[asyncio.Task[CommandResult]] = []
        for name in names:
            command = self._registry.get(name)
            if command is None:
                unknown.append(name)
                log_event(
                    self._logger,
                    logging.WARNING,
                    "command.unknown",
                    command=name,
                )
                continue
            tasks.append(
                asyncio.create_task(
                    self._execute_isolated(command), name=f"peniche:{name}"
                )
            )
        results = list(await asyncio.gather(*tasks)) if tasks else []
        return BatchResult(results=results, unknown=unknown)


def run_commands(
    registry: CommandRegistry,
    names: Sequence[str],
    **options,
) -> BatchResult:
    """Blocking wrapper around ``TaskOrchestrator.execute_many``."""
    orchestrator = TaskOrchestrator(registry, **options)
    return asyncio.run(orchestrator.execute_many(names))
