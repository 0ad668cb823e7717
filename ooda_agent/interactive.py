#!/usr/bin/env python3
"""
OODA Agent Interactive CLI

A command-line interface running tasks through the OODA loop, printing the
model's replies, actions and conclusions as they happen.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import Optional

from .config import get_config
from .config_loader import load_app_config
from .errors import ContextOverflow, ModelTransportError, TaskCancelled
from .llm_call import LLMClient
from .models import AppConfig
from .orchestration import JobUpdate, OutcomeStatus, TaskLoop, UpdateKind
from .tools import build_registry

# Global shutdown flag for signal handling
_shutdown_requested = threading.Event()
_active_loop: Optional[TaskLoop] = None

logger = logging.getLogger(__name__)


def _signal_handler(signum: int, frame) -> None:
    """Handle SIGINT: cancel the running task, then shut down."""
    if _shutdown_requested.is_set():
        # Second interrupt - force exit
        logger.debug("Force shutdown requested")
        sys.exit(1)

    logger.debug("Shutdown requested")
    _shutdown_requested.set()
    if _active_loop is not None:
        _active_loop.cancel()
    print("\n\nShutting down... (press Ctrl+C again to force)")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    """Print the welcome banner."""
    banner = """
╔════════════════════════════════════════════════════════════════╗
║                      OODA Agent Interactive                     ║
║                                                                 ║
║  Observe, Orient, Decide, Act: a model solving tasks with tools ║
╚════════════════════════════════════════════════════════════════╝

Available commands:
  /help     - Show this help message
  /trace    - Show the trace of the last task
  /history  - Show the context of the last task
  /tools    - List available tools
  /verbose  - Toggle printing of model replies
  /quit     - Exit the CLI

Type your questions or tasks below.
"""
    print(banner)


def print_tools(config: AppConfig) -> None:
    """Print available tools."""
    print("\nAvailable Tools:")
    print("─" * 64)
    tools = sorted(build_registry(config.tools).all_tools().items())
    for i, (name, tool) in enumerate(tools, start=1):
        print(f"{i}. {name.ljust(16)} [{tool.tier.value}] - {tool.purpose}")
    print()


def print_trace(loop: Optional[TaskLoop]) -> None:
    """Print the trace of the last task."""
    trace = loop.get_trace() if loop is not None else []
    if not trace:
        print("\nNo trace available. Run a task first.\n")
        return

    print("\n" + "═" * 70)
    print("TASK TRACE")
    print("═" * 70)

    for step in trace:
        print(f"\n┌─ Step {step['step']}" + ("  [FINAL]" if step["state"] == "terminal" else ""))
        print("│")
        if step["command"]:
            print(f"│  Action: {step['command']}")
        if step["input"] is not None:
            if isinstance(step["input"], (dict, list)):
                print(f"│  Input: {json.dumps(step['input'], indent=2)}")
            else:
                print(f"│  Input: {step['input']}")
        if step["observation"]:
            obs = step["observation"]
            if len(obs) > 200:
                obs = obs[:200] + "..."
            print(f"│  Observation: {obs}")
        if step["error"]:
            print(f"│  Error: {step['error']}")
        print("└" + "─" * 68)

    print()


def print_history(loop: Optional[TaskLoop]) -> None:
    """Print the context window of the last task."""
    if loop is None:
        print("\nNo history available. Run a task first.\n")
        return

    print()
    for line in loop.window.render():
        print(line)
        print("─" * 70)
    print(f"({len(loop.window)} messages, {loop.window.token_count()} tokens)\n")


class InteractiveCLI:
    """Interactive CLI for the OODA agent."""

    def __init__(self, config: AppConfig, verbose: bool = False):
        self.config = config
        self.verbose = verbose
        self.llm_client = LLMClient(config.model)
        self.last_loop: Optional[TaskLoop] = None

    def toggle_verbose(self) -> None:
        """Toggle printing of model replies."""
        self.verbose = not self.verbose
        print(f"\nVerbose mode: {'ON' if self.verbose else 'OFF'}\n")

    def on_update(self, update: JobUpdate) -> None:
        if update.kind is UpdateKind.MODEL:
            if self.verbose:
                print(update.text + "\n")
        elif update.kind is UpdateKind.ACTION:
            print(f"→ {update.text.strip()}\n")
        elif update.kind is UpdateKind.ERROR:
            print(f"✗ {update.text}\n")

    def process_query(self, query: str) -> bool:
        """Run a task.

        Returns:
            True if should continue, False if shutdown requested
        """
        global _active_loop

        print("\n" + "─" * 70)
        print("Working on it...")
        print("─" * 70 + "\n")

        loop = TaskLoop.from_config(
            query,
            self.config,
            model_client=self.llm_client,
            observer=self.on_update,
        )
        self.last_loop = loop
        _active_loop = loop

        try:
            outcome = loop.run()
        except TaskCancelled:
            print("\n\nTask cancelled, shutting down.\n")
            return False
        except (ContextOverflow, ModelTransportError) as e:
            print(f"\nError: {e}\n")
            return not _shutdown_requested.is_set()
        finally:
            _active_loop = None

        print("═" * 70)
        if outcome.status is OutcomeStatus.CONCLUDED:
            print("CONCLUSION")
            print("═" * 70)
            for termination in outcome.terminations:
                print(termination.conclusion)
        else:
            print("NO CONCLUSION")
            print("═" * 70)
            print(f"Gave up after {loop.max_steps} steps.")
        print("═" * 70 + "\n")

        step_count = len(outcome.steps)
        print(f"(Completed in {step_count} step{'s' if step_count != 1 else ''}, "
              f"{outcome.usage.total_tokens} tokens)")
        print("Use /trace to see the full trace.\n")

        return not _shutdown_requested.is_set()

    def run(self) -> None:
        """Run the interactive CLI loop."""
        print_banner()

        while not _shutdown_requested.is_set():
            try:
                user_input = input(">>> ").strip()

                if _shutdown_requested.is_set():
                    break

                if not user_input:
                    continue

                # Handle commands
                if user_input.startswith("/"):
                    command = user_input.lower()

                    if command in ("/quit", "/exit", "/q"):
                        print("\nGoodbye!\n")
                        break
                    elif command in ("/help", "/h", "/?"):
                        print_banner()
                    elif command == "/trace":
                        print_trace(self.last_loop)
                    elif command == "/history":
                        print_history(self.last_loop)
                    elif command == "/tools":
                        print_tools(self.config)
                    elif command == "/verbose":
                        self.toggle_verbose()
                    else:
                        print(f"\nUnknown command: {user_input}")
                        print("Type /help for available commands.\n")
                else:
                    if not self.process_query(user_input):
                        break

            except EOFError:
                print("\nGoodbye!\n")
                break

        self.cleanup()

    def cleanup(self) -> None:
        """Clean up resources."""
        self.llm_client.close()


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGINT, _signal_handler)

    parser = argparse.ArgumentParser(
        description="OODA Agent Interactive CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                    # Start interactive mode
  %(prog)s -v                 # Start with verbose logging
  %(prog)s -q "What is 2+2?"  # Run a single task

Use /tools in interactive mode to see available tools.
""",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-q",
        "--query",
        type=str,
        help="Run a single task and exit",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to the YAML config (default: CONFIG_PATH env or config/config.yaml)",
    )

    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Maximum number of loop steps (default: from config)",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON (for scripting)",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    config = load_app_config(args.config, reload=True) if args.config else get_config()
    if args.max_steps:
        config.loop.max_steps = args.max_steps

    if not args.query:
        InteractiveCLI(config, verbose=args.verbose).run()
        return

    global _active_loop
    loop = TaskLoop.from_config(args.query, config)
    _active_loop = loop
    try:
        outcome = loop.run()
    except (ContextOverflow, ModelTransportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        loop.close()

    if args.json:
        output = {
            "query": args.query,
            "status": outcome.status.value,
            "conclusions": [t.to_dict() for t in outcome.terminations],
            "trace": loop.get_trace(),
            "usage": outcome.usage.to_dict(),
        }
        print(json.dumps(output, indent=2))
    elif outcome.status is OutcomeStatus.CONCLUDED:
        print(outcome.conclusion)
    else:
        print(f"No conclusion after {loop.max_steps} steps.", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
