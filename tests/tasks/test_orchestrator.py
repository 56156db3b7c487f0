from __future__ import annotations

import asyncio
import io
import os
import sys
import textwrap
from pathlib import Path

import pytest
from rich.console import Console

from peniche.core.exceptions import ProcessSpawnError
from peniche.tasks import (
    CommandRegistry,
    CommandStatus,
    ConsoleSink,
    TaskOrchestrator,
    run_commands,
)

pytestmark = pytest.mark.skipif(
    " " in sys.executable, reason="command lines are split on whitespace"
)


class RecordingSink:
    def __init__(self) -> None:
        self.lines: list[tuple[str, str]] = []
        self.seen = asyncio.Event()

    def write(self, name: str, line: str) -> None:
        self.lines.append((name, line))
        self.seen.set()

    def for_command(self, name: str) -> list[str]:
        return [line for owner, line in self.lines if owner == name]


def _script(tmp_path: Path, name: str, body: str) -> str:
    path = tmp_path / f"{name}.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return f"{sys.executable} {path}"


def _orchestrator(registry: CommandRegistry, **kwargs):
    out = RecordingSink()
    err = RecordingSink()
    orchestrator = TaskOrchestrator(
        registry, os_name="linux", stdout_sink=out, stderr_sink=err, **kwargs
    )
    return orchestrator, out, err


@pytest.fixture()
def scripts_dir(tmp_path: Path) -> Path:
    if " " in str(tmp_path):
        pytest.skip("command lines are split on whitespace")
    return tmp_path


@pytest.mark.anyio
async def test_commands_run_concurrently(scripts_dir: Path) -> None:
    rendezvous = """
        import sys
        import time
        from pathlib import Path

        me, other = sys.argv[1], sys.argv[2]
        base = Path(__file__).parent
        (base / f"{me}.started").touch()
        deadline = time.monotonic() + 10
        while not (base / f"{other}.started").exists():
            if time.monotonic() > deadline:
                print("alone", flush=True)
                sys.exit(1)
            time.sleep(0.01)
        print(f"{me} met {other}", flush=True)
        """
    line = _script(scripts_dir, "rendezvous", rendezvous)
    registry = CommandRegistry.from_mapping(
        {"cmd": {"left": f"{line} left right", "right": f"{line} right left"}},
        base_dir=scripts_dir,
    )
    orchestrator, out, _ = _orchestrator(registry)
    result = await orchestrator.execute_many(["left", "right"])
    assert result.ok
    assert [r.name for r in result.results] == ["left", "right"]
    assert out.for_command("left") == ["left met right"]
    assert out.for_command("right") == ["right met left"]


@pytest.mark.anyio
async def test_failure_is_isolated_and_streams_are_tagged(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {
            "cmd": {
                "fail": _script(
                    scripts_dir,
                    "fail",
                    """
                    import sys
                    print("about to fail", file=sys.stderr, flush=True)
                    sys.exit(3)
                    """,
                ),
                "ok": _script(scripts_dir, "ok", 'print("fine")\n'),
            }
        },
        base_dir=scripts_dir,
    )
    orchestrator, out, err = _orchestrator(registry)
    result = await orchestrator.execute_many(["fail", "ok", "ghost"])
    by_name = {r.name: r for r in result.results}
    assert by_name["fail"].status is CommandStatus.FAILED
    assert by_name["fail"].returncode == 3
    assert "exited with code 3" in by_name["fail"].error
    assert by_name["ok"].status is CommandStatus.SUCCEEDED
    assert result.unknown == ["ghost"]
    assert not result.ok
    assert err.lines == [("fail", "about to fail")]
    assert out.lines == [("ok", "fine")]


@pytest.mark.anyio
async def test_spawn_failure(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {"cmd": {"missing": "peniche-no-such-program --flag"}},
        base_dir=scripts_dir,
    )
    orchestrator, _, _ = _orchestrator(registry)
    with pytest.raises(ProcessSpawnError) as excinfo:
        await orchestrator.execute_one(registry["missing"])
    assert excinfo.value.program == "peniche-no-such-program"

    result = await orchestrator.execute_many(["missing"])
    assert result.results[0].status is CommandStatus.FAILED
    assert "peniche-no-such-program" in result.results[0].error


@pytest.mark.anyio
async def test_missing_platform_line_is_skipped(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {"cmd": {"win": {"windows": "build.bat"}}}, base_dir=scripts_dir
    )
    orchestrator, out, err = _orchestrator(registry)
    result = await orchestrator.execute_many(["win"])
    assert result.results[0].status is CommandStatus.SKIPPED
    assert result.ok
    assert out.lines == [] and err.lines == []


@pytest.mark.anyio
async def test_environment_overlay_and_working_dir(scripts_dir: Path) -> None:
    (scripts_dir / "work").mkdir()
    show = _script(
        scripts_dir,
        "show",
        """
        import os
        print(os.getcwd())
        print(os.environ["FROM_DOTENV"], os.environ["SHARED"], os.environ["INHERITED"])
        """,
    )
    registry = CommandRegistry.from_mapping(
        {
            "cmd": {
                "show": {
                    "command": show,
                    "working_dir": "work",
                    "env": {"SHARED": "command"},
                }
            }
        },
        base_dir=scripts_dir,
        base_env={"FROM_DOTENV": "dotenv", "SHARED": "dotenv"},
    )
    orchestrator, out, _ = _orchestrator(
        registry, base_env={**os.environ, "INHERITED": "process", "SHARED": "proc"}
    )
    result = await orchestrator.execute_many(["show"])
    assert result.ok
    cwd, values = out.for_command("show")
    assert Path(cwd).resolve() == (scripts_dir / "work").resolve()
    assert values == "dotenv command process"


@pytest.mark.anyio
async def test_all_output_is_forwarded_before_completion(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {
            "cmd": {
                "chatty": _script(
                    scripts_dir,
                    "chatty",
                    """
                    import sys
                    for i in range(500):
                        print(f"out {i}")
                        print(f"err {i}", file=sys.stderr)
                    """,
                )
            }
        },
        base_dir=scripts_dir,
    )
    orchestrator, out, err = _orchestrator(registry)
    result = await orchestrator.execute_one(registry["chatty"])
    assert result.status is CommandStatus.SUCCEEDED
    assert out.for_command("chatty") == [f"out {i}" for i in range(500)]
    assert err.for_command("chatty") == [f"err {i}" for i in range(500)]


@pytest.mark.anyio
@pytest.mark.parametrize("length", [1500, 5000, 20000])
async def test_overlong_line_is_dropped_not_fatal(
    scripts_dir: Path, length: int
) -> None:
    registry = CommandRegistry.from_mapping(
        {
            "cmd": {
                "long": _script(
                    scripts_dir,
                    "long",
                    f"""
                    print("before", flush=True)
                    print("x" * {length}, flush=True)
                    print("after", flush=True)
                    """,
                )
            }
        },
        base_dir=scripts_dir,
    )
    orchestrator, out, _ = _orchestrator(registry, stream_limit=1024)
    result = await orchestrator.execute_one(registry["long"])
    assert result.status is CommandStatus.SUCCEEDED
    assert out.for_command("long") == ["before", "after"]


@pytest.mark.anyio
@pytest.mark.skipif(os.name == "nt", reason="POSIX signals")
async def test_timeout_terminates_command(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {"cmd": {"slow": _script(scripts_dir, "slow", "import time\ntime.sleep(60)\n")}},
        base_dir=scripts_dir,
    )
    orchestrator, _, _ = _orchestrator(
        registry, timeout_seconds=0.5, grace_seconds=2.0
    )
    result = await orchestrator.execute_many(["slow"])
    assert result.results[0].status is CommandStatus.TIMED_OUT
    assert result.results[0].returncode is not None
    assert not result.ok


@pytest.mark.anyio
@pytest.mark.skipif(os.name == "nt", reason="POSIX signals")
async def test_cancellation_reaps_child(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {
            "cmd": {
                "sleepy": _script(
                    scripts_dir,
                    "sleepy",
                    """
                    import os
                    import time
                    print(os.getpid(), flush=True)
                    time.sleep(60)
                    """,
                )
            }
        },
        base_dir=scripts_dir,
    )
    orchestrator, out, _ = _orchestrator(registry, grace_seconds=2.0)
    task = asyncio.ensure_future(orchestrator.execute_one(registry["sleepy"]))
    await asyncio.wait_for(out.seen.wait(), timeout=10)
    pid = int(out.for_command("sleepy")[0])
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_run_commands_blocking_wrapper(scripts_dir: Path) -> None:
    registry = CommandRegistry.from_mapping(
        {"cmd": {"hello": _script(scripts_dir, "hello", 'print("hi")\n')}},
        base_dir=scripts_dir,
    )
    sink = RecordingSink()
    result = run_commands(
        registry, ["hello"], os_name="linux", stdout_sink=sink, stderr_sink=sink
    )
    assert result.ok
    assert sink.lines == [("hello", "hi")]


def test_console_sink_prefixes_lines() -> None:
    buffer = io.StringIO()
    sink = ConsoleSink(Console(file=buffer, color_system=None, width=20))
    sink.write("build", "a line that is longer than the console width")
    sink.write("build", "[red]literal[/red]")
    assert buffer.getvalue().splitlines() == [
        "[build] a line that is longer than the console width",
        "[build] [red]literal[/red]",
    ]
