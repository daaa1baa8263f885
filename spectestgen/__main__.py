"""CLI entry point for generating spectest modules."""

import argparse
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError
from rich.logging import RichHandler

from spectestgen.config import Config
from spectestgen.display import (
    display_error,
    display_generated_source,
    display_spinner_context,
    display_suite_summary,
)
from spectestgen.errors import GenerationError
from spectestgen.suite import load_suite
from spectestgen.translator import make_translator
from spectestgen.writer import build_suite, generate_source, make_parser


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser with generate and show subcommands.

    Returns:
        Configured argument parser instance.
    """
    parser = argparse.ArgumentParser(prog="spectestgen")
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log every parsed and generated file",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    generate_parser = subcommands.add_parser("generate")
    generate_parser.add_argument("--suite", default="spectests.yaml")

    show_parser = subcommands.add_parser("show")
    show_parser.add_argument("script_path")
    show_parser.add_argument(
        "--runtime-module", default="_common",
        help="Import path of the runtime helper used by the generated code",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    """Route log records through rich.

    Args:
        verbose: When True, log at DEBUG level instead of WARNING.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
    )


def load_config() -> Config:
    """Load settings from the environment, exiting on invalid values.

    Returns:
        Validated configuration.
    """
    try:
        return Config()
    except ValidationError as exc:
        display_error(f"Invalid configuration: {exc}")
        raise SystemExit(1) from exc


def run_generate(suite_path: Path) -> None:
    """Generate every script listed in a suite file and its manifest.

    Args:
        suite_path: Path to the YAML suite file.
    """
    try:
        suite = load_suite(suite_path)
    except (ValueError, yaml.YAMLError) as exc:
        display_error(f"Invalid suite file {suite_path}: {exc}")
        raise SystemExit(1) from exc

    config = load_config()
    try:
        with display_spinner_context(f"Generating {len(suite.tests)} spectests..."):
            result = build_suite(suite, config)
    except GenerationError as exc:
        display_error(str(exc))
        raise SystemExit(1) from exc
    display_suite_summary(result)


def show_script(script_path: Path, runtime_module: str) -> None:
    """Generate a single script and print the result without writing it.

    Args:
        script_path: Script file to generate.
        runtime_module: Import path of the runtime helper module.
    """
    config = load_config()
    try:
        artifact = generate_source(
            script_path,
            make_parser(config),
            make_translator(config.wasm2wat_bin, config.tool_timeout),
            runtime_module,
        )
    except GenerationError as exc:
        display_error(str(exc))
        raise SystemExit(1) from exc
    display_generated_source(artifact)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args and dispatch to generate or show behavior.

    Args:
        argv: Optional argument vector for testing.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "generate":
        suite_path = Path(args.suite)
        if not suite_path.exists():
            display_error(f"Suite file not found: {suite_path}")
            raise SystemExit(1)
        run_generate(suite_path)
    elif args.command == "show":
        script_path = Path(args.script_path)
        if not script_path.exists():
            display_error(f"Script file not found: {script_path}")
            raise SystemExit(1)
        show_script(script_path, args.runtime_module)


if __name__ == "__main__":
    main()
