from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import Optional

from .logging_utils import log_event


async def terminate_child(
    process: asyncio.subprocess.Process,
    *,
    grace_seconds: float,
    own_group: bool = True,
    logger: Optional[logging.Logger] = None,
    event_prefix: str = "process_termination",
) -> Optional[int]:
    """
    Stop a child started by the orchestrator and wait for it to exit.

    Sends SIGTERM (to the child's process group when it leads one), waits up
    to ``grace_seconds``, then sends SIGKILL and waits for the exit status.
    Returns the exit code.
    """
    if process.returncode is not None:
        return process.returncode

    grace_seconds = max(0.0, float(grace_seconds))
    use_group = own_group and os.name != "nt" and hasattr(os, "killpg")
    _log_event(
        logger,
        logging.DEBUG,
        event_prefix,
        "terminate.start",
        pid=process.pid,
        group=use_group,
        grace_seconds=grace_seconds,
    )

    _send_terminate(process, use_group, logger=logger, event_prefix=event_prefix)
    try:
        return await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        _log_event(
            logger,
            logging.WARNING,
            event_prefix,
            "terminate.grace_expired",
            pid=process.pid,
        )

    _send_kill(process, use_group, logger=logger, event_prefix=event_prefix)
    returncode = await process.wait()
    _log_event(
        logger,
        logging.DEBUG,
        event_prefix,
        "terminate.complete",
        pid=process.pid,
        returncode=returncode,
    )
    return returncode


def _send_terminate(
    process: asyncio.subprocess.Process,
    use_group: bool,
    *,
    logger: Optional[logging.Logger],
    event_prefix: str,
) -> None:
    if use_group and _send_pgid_signal(
        process.pid, signal.SIGTERM, logger=logger, event_prefix=event_prefix
    ):
        return
    try:
        process.terminate()
    except ProcessLookupError:
        pass


def _send_kill(
    process: asyncio.subprocess.Process,
    use_group: bool,
    *,
    logger: Optional[logging.Logger],
    event_prefix: str,
) -> None:
    if use_group and _send_pgid_signal(
        process.pid, signal.SIGKILL, logger=logger, event_prefix=event_prefix
    ):
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass


def _send_pgid_signal(
    pgid: int,
    sig: int,
    *,
    logger: Optional[logging.Logger],
    event_prefix: str,
) -> bool:
    try:
        os.killpg(pgid, sig)
        _log_event(
            logger,
            logging.DEBUG,
            event_prefix,
            "signal.sent",
            target="pgid",
            signal=sig,
            id=pgid,
        )
        return True
    except ProcessLookupError:
        _log_event(
            logger,
            logging.DEBUG,
            event_prefix,
            "signal.not_found",
            target="pgid",
            signal=sig,
            id=pgid,
        )
        return True
    except PermissionError as exc:
        _log_event(
            logger,
            logging.WARNING,
            event_prefix,
            "signal.permission_denied",
            target="pgid",
            signal=sig,
            id=pgid,
            exc=exc,
        )
        return False
    except OSError as exc:
        _log_event(
            logger,
            logging.DEBUG,
            event_prefix,
            "signal.os_error",
            target="pgid",
            signal=sig,
            id=pgid,
            exc=exc,
        )
        return False


def _log_event(
    logger: Optional[logging.Logger],
    level: int,
    event_prefix: str,
    event_name: str,
    **fields,
) -> None:
    if logger is None:
        return
    log_event(logger, level, _qualified_event(event_prefix, event_name), **fields)


def _qualified_event(event_prefix: str, event_name: str) -> str:
    prefix = (event_prefix or "process_termination").strip().rstrip(".")
    return f"{prefix}.{event_name}"
