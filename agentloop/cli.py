"""CLI entry point for agentloop."""

import argparse
import asyncio
import importlib.util
import sys
from pathlib import Path

from dotenv import load_dotenv


def load_hook(hook_path: str):
    """Load a hook module from a file path."""
    path = Path(hook_path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"Hook file not found: {hook_path}")

    # Use unique module name based on file path to avoid collisions
    module_name = f"hook_{path.stem}_{id(path)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def build_parser() -> argparse.ArgumentParser:
    from agentloop import config
    from agentloop.providers import PROVIDERS

    parser = argparse.ArgumentParser(
        description="agentloop - a tool-calling assistant",
    )
    parser.add_argument(
        "--provider", "-p",
        choices=list(PROVIDERS.keys()),
        default=config.DEFAULT_PROVIDER,
        help=f"LLM provider (default: {config.DEFAULT_PROVIDER})",
    )
    parser.add_argument(
        "--model", "-m",
        help="Model ID (provider-specific, uses default if not set)",
    )
    parser.add_argument(
        "--host",
        help="Base URL for OpenAI-compatible servers, or Ollama host",
    )
    parser.add_argument(
        "--hook",
        action="append",
        help="Path to a Python hook file (can be used multiple times)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=config.DEFAULT_MAX_ITERATIONS,
        help=f"Maximum model calls per query (default: {config.DEFAULT_MAX_ITERATIONS})",
    )
    parser.add_argument(
        "--history-file",
        default=None,
        help="JSON file to load and persist the conversation",
    )
    parser.add_argument(
        "--stats-file",
        default=None,
        help="Path to write JSON stats (iterations, tokens) after completion",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--query", "-q",
        default=None,
        help="Run a single query and exit",
    )
    return parser


def main(argv: list[str] | None = None):
    # Environment must be loaded before the config module reads it
    load_dotenv()

    from agentloop import config
    from agentloop.agent import run_agent
    from agentloop.log import setup_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.max_iterations < 1:
        parser.error("--max-iterations must be at least 1")

    # Apply default host for ollama if not specified
    if args.provider == "ollama" and args.host is None:
        args.host = config.DEFAULT_OLLAMA_HOST

    # Determine model based on provider if not specified
    if args.model is None:
        args.model = {
            "openai": config.DEFAULT_OPENAI_MODEL,
            "ollama": config.DEFAULT_OLLAMA_MODEL,
        }[args.provider]

    setup_logging(args.log_level)

    # Load hooks if specified
    hooks = []
    if args.hook:
        for hook_path in args.hook:
            hooks.append(load_hook(hook_path))

    asyncio.run(run_agent(
        provider=args.provider,
        model=args.model,
        host=args.host,
        hooks=hooks,
        max_iterations=args.max_iterations,
        history_file=args.history_file,
        stats_file=args.stats_file,
        query=args.query,
    ))


if __name__ == "__main__":
    main()
