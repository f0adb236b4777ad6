"""``pdf-quiz config``: manage the TOML configuration file."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .core import config as config_mod
from .gateway.documents import format_size


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-quiz config",
        description="Manage pdf-quiz configuration files.",
    )
    subparsers = parser.add_subparsers(dest="config_command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Write the default configuration template.",
    )
    init_parser.add_argument(
        "--path",
        type=str,
        help=(
            "Optional destination for the config TOML (defaults to data home)."
        ),
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file if present.",
    )

    show_parser = subparsers.add_parser(
        "show",
        help="Validate the active configuration and print key settings.",
    )
    show_parser.add_argument(
        "--path",
        type=str,
        help="Path to the config TOML (defaults to resolved data home).",
    )

    path_parser = subparsers.add_parser(
        "path",
        help="Print the resolved config path.",
    )
    path_parser.add_argument(
        "--path",
        type=str,
        help="Optional path override to resolve/normalise.",
    )
    return parser


def _to_path(value: str | None) -> Path | None:
    if value is None:
        return None
    return Path(value).expanduser().resolve()


def _handle_init(args: argparse.Namespace) -> int:
    target, _ = config_mod.resolve_config_path(
        explicit_path=_to_path(args.path)
    )
    try:
        config_mod.write_template(target, overwrite=args.force)
    except config_mod.ConfigError as exc:
        _print_error(str(exc))
        return 2
    print(f"Wrote config template to {target}")
    return 0


def _handle_show(args: argparse.Namespace) -> int:
    explicit_path = _to_path(args.path)
    try:
        cfg = config_mod.load_config(explicit_path=explicit_path)
    except config_mod.ConfigError as exc:
        _print_error(str(exc))
        return 2
    path, _ = config_mod.resolve_config_path(explicit_path=explicit_path)
    limits = cfg.limits
    print("Configuration OK")
    print(f"  path: {path}{'' if path.exists() else ' (defaults)'}")
    print(f"  model: {cfg.openai.model}")
    print(f"  fallback_model: {cfg.openai.fallback_model}")
    print(f"  max_files: {limits.max_files}")
    print(f"  max_file_size: {format_size(limits.max_file_bytes)}")
    print(f"  max_total_size: {format_size(limits.max_total_bytes)}")
    print(f"  questions_per_request: {cfg.generation.question_count}")
    print(f"  server: {cfg.server.host}:{cfg.server.port}")
    return 0


def _handle_path(args: argparse.Namespace) -> int:
    path, _ = config_mod.resolve_config_path(
        explicit_path=_to_path(args.path)
    )
    print(path)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    handlers = {
        "init": _handle_init,
        "show": _handle_show,
        "path": _handle_path,
    }
    return handlers[args.config_command](args)


def _print_error(message: str) -> None:
    sys.stderr.write(message + "\n")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
