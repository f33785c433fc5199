"""Tests for the command line entry point and configuration loading."""

from pathlib import Path

import pytest

from conftest import python_command
from models import OnelineConfig
from oneline import ConfigError, load_config, main, parse_args, split_command


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    """Point oneline at an empty config dir and a fixed terminal width."""
    monkeypatch.delenv("ONELINE_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("COLUMNS", "80")


class TestSplitCommand:

    def test_command_starts_at_first_non_flag(self):
        assert split_command(["make", "-j4"]) == ([], ["make", "-j4"])

    def test_label_consumes_its_value(self):
        assert split_command(["--label", "Build", "make", "all"]) == (
            ["--label=Build"], ["make", "all"]
        )

    def test_double_dash_separator(self):
        assert split_command(["--label", "x", "--", "-weird"]) == (["--label=x"], ["-weird"])

    def test_parse_args(self):
        args, command = parse_args(["--label", "Building Project", "make", "all"])
        assert args.label == "Building Project"
        assert command == ["make", "all"]

    def test_label_value_may_start_with_dash(self):
        assert split_command(["--label", "-x", "true"]) == (["--label=-x"], ["true"])
        args, command = parse_args(["--label", "-x", "true"])
        assert args.label == "-x"
        assert command == ["true"]


class TestArgumentErrors:

    def test_missing_command_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--label", "x"])
        assert exc_info.value.code == 1
        assert "usage:" in capsys.readouterr().err

    def test_unknown_option_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--bogus", "make"])
        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_label_without_value_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--label"])
        assert exc_info.value.code == 1


class TestMain:

    def test_success(self, capsys):
        assert main(python_command("print('hello')")) == 0
        captured = capsys.readouterr()
        assert captured.out.endswith("hello\n")
        assert captured.err == ""

    def test_explicit_label_in_prefix(self, capsys):
        assert main(["--label", "Greeting"] + python_command("print('hello')")) == 0
        assert "[Greeting] hello" in capsys.readouterr().out

    def test_dash_label_in_prefix(self, capsys):
        assert main(["--label", "-x"] + python_command("print('hi')")) == 0
        assert "[-x] hi" in capsys.readouterr().out

    def test_failure_propagates_exit_code(self, capsys):
        code = "import sys; print('bad thing', file=sys.stderr); sys.exit(7)"
        assert main(python_command(code)) == 7
        err = capsys.readouterr().err
        assert "Command failed with exit code 7" in err
        assert err.endswith("bad thing\n")

    def test_command_not_found(self, capsys):
        assert main(["no-such-command-for-oneline"]) == 1
        assert "Command not found: no-such-command-for-oneline" in capsys.readouterr().err

    def test_invalid_config_exits_1(self, tmp_path, monkeypatch, capsys):
        config = tmp_path / "bad.yaml"
        config.write_text("label_max_length: -1\n")
        monkeypatch.setenv("ONELINE_CONFIG", str(config))
        assert main(python_command("print('hi')")) == 1
        assert "Invalid config" in capsys.readouterr().err

    def test_config_label_length(self, tmp_path, monkeypatch, capsys):
        config = tmp_path / "oneline.yaml"
        config.write_text("label_max_length: 4\n")
        monkeypatch.setenv("ONELINE_CONFIG", str(config))
        assert main(["--label", "Compiling"] + python_command("print('x')")) == 0
        assert "[Comp…] x" in capsys.readouterr().out


class TestLoadConfig:

    def test_defaults_without_file(self):
        assert load_config() == OnelineConfig()

    def test_xdg_location(self, tmp_path):
        path = tmp_path / "xdg" / "oneline" / "config.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("fallback_columns: 120\ncolor_env:\n  COLORTERM: 24\n")
        config = load_config()
        assert config.fallback_columns == 120
        assert config.child_env_overrides()["COLORTERM"] == "24"

    def test_empty_file_is_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == OnelineConfig()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("color_env: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(path)
