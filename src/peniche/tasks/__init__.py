from .commands import (
    Command,
    PlatformCommand,
    ResolvedCommand,
    SimpleCommand,
    host_os,
    resolve,
)
from .orchestrator import (
    BatchResult,
    CommandResult,
    CommandStatus,
    ConsoleSink,
    OutputSink,
    TaskOrchestrator,
    run_commands,
)
from .registry import CommandRegistry, parse_command

__all__ = [
    "BatchResult",
    "Command",
    "CommandRegistry",
    "CommandResult",
    "CommandStatus",
    "ConsoleSink",
    "OutputSink",
    "PlatformCommand",
    "ResolvedCommand",
    "SimpleCommand",
    "TaskOrchestrator",
    "host_os",
    "parse_command",
    "resolve",
    "run_commands",
]
