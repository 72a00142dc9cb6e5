"""Tests for locating a queue's deferq.toml and reading it."""

from pathlib import Path

import click
import pytest

from deferq.config.discovery import (
    CONFIG_FILENAME,
    QueueLocation,
    find_config,
    locate_queue,
    read_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DEFERQ_CONFIG", raising=False)


class TestFindConfig:
    def test_finds_in_start_dir(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("[queue]\n")
        assert find_config(tmp_path) == config_file

    def test_walks_up(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("[queue]\n")
        child = tmp_path / "a" / "b" / "c"
        child.mkdir(parents=True)
        assert find_config(child) == config_file

    def test_nearest_wins(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        inner = tmp_path / "inner"
        inner.mkdir()
        (inner / CONFIG_FILENAME).write_text("")
        assert find_config(inner / ".") == inner / CONFIG_FILENAME

    def test_none_when_absent(self, tmp_path: Path) -> None:
        child = tmp_path / "empty"
        child.mkdir()
        assert find_config(child) is None

    def test_env_var_pins_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text("[queue]\n")
        monkeypatch.setenv("DEFERQ_CONFIG", str(config_file))
        assert find_config(tmp_path / "elsewhere") == config_file

    def test_env_var_missing_file_skips_walk(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[queue]\n")
        monkeypatch.setenv("DEFERQ_CONFIG", str(tmp_path / "nope.toml"))
        assert find_config(tmp_path) is None


class TestLocateQueue:
    def test_root_is_config_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        nested = tmp_path / "src" / "app"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        location = locate_queue()
        assert location.root.resolve() == tmp_path.resolve()
        assert location.config_path is not None
        assert location.config_path.resolve() == (tmp_path / CONFIG_FILENAME).resolve()

    def test_cwd_without_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        location = locate_queue()
        assert location.config_path is None
        assert location.root == Path.cwd()

    def test_explicit_root_kept(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        root = tmp_path / "data"
        root.mkdir()
        location = locate_queue(root=root)
        assert location.root == root
        assert location.config_path == tmp_path / CONFIG_FILENAME

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        custom = tmp_path / "conf" / "queue.toml"
        custom.parent.mkdir()
        custom.write_text("")
        assert locate_queue(config_path=str(custom)) == QueueLocation(
            root=custom.parent, config_path=custom
        )

    def test_missing_explicit_config_runs_on_defaults(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        location = locate_queue(config_path=tmp_path / "absent.toml", root=tmp_path)
        assert location == QueueLocation(root=tmp_path, config_path=None)


class TestReadConfig:
    def test_returns_raw_table(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text(
            "[queue]\n"
            'failure_policy = "halt"\n'
            "[[queue.rules]]\n"
            "time_window_ms = 60000\n"
            "execution_count_per_time_window = 30\n"
        )
        assert read_config(config_file) == {
            "queue": {
                "failure_policy": "halt",
                "rules": [{"time_window_ms": 60000, "execution_count_per_time_window": 30}],
            }
        }

    def test_empty_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("")
        assert read_config(config_file) == {}

    def test_malformed_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("[queue\n")
        with pytest.raises(click.ClickException, match="Invalid TOML"):
            read_config(config_file)

    def test_invalid_rule_names_file_and_field(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text(
            "[[queue.rules]]\ntime_window_ms = 0\nexecution_count_per_time_window = 1\n"
        )
        with pytest.raises(click.ClickException) as excinfo:
            read_config(config_file)
        message = excinfo.value.message
        assert str(config_file) in message
        assert "queue.rules.0.time_window_ms" in message
