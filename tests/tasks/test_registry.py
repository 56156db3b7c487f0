import textwrap
from pathlib import Path

import pytest

from peniche.core.exceptions import ConfigFormatError
from peniche.tasks import CommandRegistry, PlatformCommand, SimpleCommand


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_registry_resolves_per_platform(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "Peniche.toml",
        """\
        [cmd]
        test = "cargo test"

        [cmd.build]
        linux = "make"
        windows = "build.bat"
        """,
    )
    registry = CommandRegistry.load(config)
    assert registry.names() == ["build", "test"]
    assert isinstance(registry["test"], SimpleCommand)
    assert isinstance(registry["build"], PlatformCommand)
    assert registry.resolve("test", "darwin").line == "cargo test"
    assert registry.resolve("build", "linux").line == "make"
    assert registry.resolve("build", "windows").line == "build.bat"
    assert registry.resolve("build", "darwin").is_empty


def test_registry_loads_yaml_with_env_and_working_dir(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "peniche.yml",
        """\
        cmd:
          serve:
            command: python -m http.server
            working_dir: site
            env:
              PORT: "8000"
        """,
    )
    registry = CommandRegistry.load(config)
    resolved = registry.resolve("serve", "linux")
    assert resolved.working_dir == tmp_path / "site"
    assert resolved.env == {"PORT": "8000"}
    assert registry.base_dir.resolve() == tmp_path.resolve()
    assert registry.source == config


def test_registry_reads_dotenv_beside_config(tmp_path: Path) -> None:
    config = _write(tmp_path / "Peniche.toml", '[cmd]\nhello = "echo hi"\n')
    (tmp_path / ".env").write_text("GREETING=hi\n", encoding="utf-8")
    assert dict(CommandRegistry.load(config).base_env) == {"GREETING": "hi"}


@pytest.mark.parametrize(
    "body",
    [
        "[cmd]\nbad = 3\n",
        "[cmd.bad]\nlinux = \"make\"\nshell = \"bash\"\n",
        "[cmd.bad]\nlinux = 1\n",
        "[cmd.bad]\ncommand = \"make\"\nenv = \"A=1\"\n",
        "[cmd.bad]\ncommand = \"make\"\nenv = { A = 1 }\n",
        "[other]\nx = 1\n",
        "cmd = \"echo\"\n",
    ],
)
def test_registry_rejects_malformed_config(tmp_path: Path, body: str) -> None:
    config = _write(tmp_path / "Peniche.toml", body)
    with pytest.raises(ConfigFormatError):
        CommandRegistry.load(config)


def test_registry_rejects_whole_file_on_one_bad_entry(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "Peniche.toml",
        '[cmd]\ngood = "echo ok"\nbad = ["echo", "no"]\n',
    )
    with pytest.raises(ConfigFormatError, match="bad"):
        CommandRegistry.load(config)


def test_registry_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigFormatError):
        CommandRegistry.load(tmp_path / "Peniche.toml")


def test_registry_is_read_only() -> None:
    registry = CommandRegistry.from_mapping({"cmd": {"a": "echo a"}})
    with pytest.raises(TypeError):
        registry["b"] = SimpleCommand("b", "echo b")  # type: ignore[index]
    with pytest.raises(TypeError):
        registry.base_env["X"] = "1"  # type: ignore[index]
    with pytest.raises(KeyError):
        registry.resolve("missing")


def test_registry_anchors_relative_config_path(tmp_path: Path, monkeypatch) -> None:
    _write(
        tmp_path / "Peniche.toml",
        '[cmd.docs]\ncommand = "mdbook build"\nworking_dir = "book"\n',
    )
    monkeypatch.chdir(tmp_path)
    registry = CommandRegistry.load(Path("Peniche.toml"))
    assert registry.base_dir.resolve() == tmp_path.resolve()
    resolved = registry.resolve("docs", "linux")
    assert resolved.working_dir.is_absolute()
    assert resolved.working_dir.resolve() == (tmp_path / "book").resolve()
