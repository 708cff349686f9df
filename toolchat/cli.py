"""CLI entry point for toolchat."""

import argparse
import asyncio
import importlib.util
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from toolchat.agent import run_agent
from toolchat.config import (
    DEFAULT_MAX_TURNS,
    DEFAULT_OLLAMA_HOST,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_TOOL_TIMEOUT,
)
from toolchat.errors import ConfigError
from toolchat.providers import PROVIDERS


def load_hook(hook_path: str):
    """Load a hook module from a file path."""
    path = Path(hook_path).resolve()
    if not path.exists():
        raise ConfigError(f"Hook file not found: {hook_path}")

    # Use unique module name based on file path to avoid collisions
    module_name = f"toolchat_hook_{path.stem}_{id(path)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"Not a Python file: {hook_path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    # The HTTP clients are chatty at DEBUG
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolchat",
        description="Chat with a local language model that can call tools",
    )
    parser.add_argument(
        "query",
        nargs="?",
        help="Ask a single question and exit (interactive mode if omitted)",
    )
    parser.add_argument(
        "--provider", "-p",
        choices=list(PROVIDERS.keys()),
        default=DEFAULT_PROVIDER,
        help=f"LLM provider (default: {DEFAULT_PROVIDER})",
    )
    parser.add_argument(
        "--model", "-m",
        help=f"Model ID (default for ollama: {DEFAULT_OLLAMA_MODEL})",
    )
    parser.add_argument(
        "--host",
        help=f"Host URL for Ollama or OpenAI-compatible providers (default: {DEFAULT_OLLAMA_HOST})",
    )
    parser.add_argument(
        "--hook",
        action="append",
        help="Path to a Python hook file (can be used multiple times)",
    )
    parser.add_argument(
        "--max-turns",
        type=_positive_int,
        default=DEFAULT_MAX_TURNS,
        help=f"Maximum model turns per question (default: {DEFAULT_MAX_TURNS})",
    )
    parser.add_argument(
        "--unlimited-turns",
        action="store_true",
        help="Never stop the tool loop early",
    )
    parser.add_argument(
        "--tool-timeout",
        type=float,
        default=DEFAULT_TOOL_TIMEOUT,
        help="Seconds before a single tool call is reported as timed out",
    )
    parser.add_argument(
        "--concurrent-tools",
        action="store_true",
        help="Run the tool calls of one turn concurrently",
    )
    parser.add_argument(
        "--stats-file",
        type=str,
        default=None,
        help="Path to write JSON stats (turns, tool calls, tokens) after completion",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Validate openai_compatible provider requirements
    if args.provider == "openai_compatible":
        if args.model is None:
            parser.error("--model is required for openai_compatible provider")
        if args.host is None:
            parser.error("--host is required for openai_compatible provider")

    if args.provider == "ollama":
        if args.host is None:
            args.host = DEFAULT_OLLAMA_HOST
        if args.model is None:
            args.model = DEFAULT_OLLAMA_MODEL

    setup_logging(args.verbose)

    hooks = []
    for hook_path in args.hook or []:
        try:
            hooks.append(load_hook(hook_path))
        except ConfigError as exc:
            parser.error(str(exc))

    return asyncio.run(run_agent(
        provider=args.provider,
        model=args.model,
        host=args.host,
        hooks=hooks,
        query=args.query,
        max_turns=None if args.unlimited_turns else args.max_turns,
        tool_timeout=args.tool_timeout,
        concurrent_tools=args.concurrent_tools,
        stats_file=args.stats_file,
    ))


if __name__ == "__main__":
    sys.exit(main())
