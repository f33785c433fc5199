"""
oneline: run a noisy command behind a single status line.

    oneline [--label LABEL] command [args...]

Output of the command is shown one line at a time on a continuously
overwritten status line. If the command fails, everything it wrote to
stderr (or stdout, when stderr stayed empty) is printed in full.
"""
import argparse
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import ValidationError

from console_manager import ConsoleManager, print_oneline
from models import OnelineConfig, RenderState, derive_label
from process_manager import ProcessSupervisor, SpawnError

__version__ = "0.1.0"

CONFIG_ENV_VAR = "ONELINE_CONFIG"


class ConfigError(Exception):
    pass


class OnelineArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        print_oneline(f"Error: {message}", level="error")
        self.print_usage(sys.stderr)
        self.exit(1)


def build_parser() -> OnelineArgumentParser:
    parser = OnelineArgumentParser(
        prog="oneline",
        usage="%(prog)s [--label \"Label\"] command [args...]",
        description="Run a command, showing its output on a single status line.",
        epilog="Example: oneline --label \"Building Project\" make all",
    )
    parser.add_argument("--label", help="Text shown in brackets before each line (default: the command)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def split_command(argv: List[str]) -> Tuple[List[str], List[str]]:
    """
    Separate oneline's own options from the command to run.

    Options are only read up to the first token that does not start with a
    dash (or an explicit `--`); from there on everything belongs to the command.
    The word after `--label` is its value even when it starts with a dash.
    """
    options: List[str] = []
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--":
            return options, argv[i + 1:]
        if not token.startswith("-"):
            break
        if token == "--label" and i + 1 < len(argv):
            options.append(f"--label={argv[i + 1]}")
            i += 2
        else:
            options.append(token)
            i += 1
    return options, argv[i:]


def parse_args(argv: List[str]) -> Tuple[argparse.Namespace, List[str]]:
    parser = build_parser()
    options, command = split_command(argv)
    args = parser.parse_args(options)
    if not command:
        parser.print_usage(sys.stderr)
        print(parser.epilog, file=sys.stderr)
        parser.exit(1)
    return args, command


def default_config_path() -> Optional[Path]:
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    candidate = Path(base) / "oneline" / "config.yaml"
    return candidate if candidate.is_file() else None


def load_config(config_path: Optional[Path] = None) -> OnelineConfig:
    """Load the YAML configuration, falling back to defaults when there is none."""
    if config_path is None:
        config_path = default_config_path()
    if config_path is None:
        return OnelineConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config '{config_path}': {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config '{config_path}' must be a mapping")
    try:
        return OnelineConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config '{config_path}': {e}")


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args, command = parse_args(argv)

    try:
        config = load_config()
    except ConfigError as e:
        print_oneline(f"Error: {e}", level="error")
        return 1

    logging.basicConfig(
        level=config.log_level,
        format="%(name)s: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # Sampled once; a resize during the run is not picked up.
    columns = shutil.get_terminal_size((config.fallback_columns, 24)).columns
    label = derive_label(command, args.label, config.label_max_length)
    console = ConsoleManager(RenderState(label=label, columns=columns), sys.stdout)

    supervisor = ProcessSupervisor(command, console, color_env=config.child_env_overrides())
    try:
        status = supervisor.run()
    except SpawnError as e:
        print_oneline(str(e), level="error")
        return 1
    return status.exit_code


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
