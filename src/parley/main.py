"""Command-line entry point for parley."""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, Sequence

from . import __version__
from .client import ParleyClient
from .config import Settings, load_env_file
from .dispatcher import AttemptEvent
from .errors import (
    ConfigurationError,
    ConversationLookupError,
    ResponseNotSavedError,
    StorageError,
)
from .providers import AllCredentialsExhaustedError, AuthenticationError, LLMProviderError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_EXHAUSTED = 3
EXIT_AUTH = 4
EXIT_PROVIDER = 5
EXIT_SELECTOR = 6
EXIT_NOT_SAVED = 7
EXIT_STORAGE = 8


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parley",
        description="Ask an LLM, rotating API keys on rate limits and keeping conversation history.",
    )
    parser.add_argument("prompt", nargs="*", help="Prompt text")
    parser.add_argument(
        "-c",
        "--continue",
        dest="selector",
        help="Conversation to continue: full id, id suffix, or 1 for the most recent",
    )
    parser.add_argument("-m", "--model", help="Model, e.g. google/gemini-2.5-flash or ollama::llama3.2")
    parser.add_argument("--list", action="store_true", help="List saved conversations")
    parser.add_argument("--list-models", action="store_true", help="List models of the backend")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(settings: Settings) -> Optional[str]:
    """Log to stderr (warnings only unless debugging) and to a rotating file."""
    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if settings.debug else logging.WARNING)
    handlers.append(stream_handler)

    log_file = None
    try:
        os.makedirs(settings.log_dir, exist_ok=True)
        log_file = os.path.join(settings.log_dir, "parley.log")
        handlers.append(
            RotatingFileHandler(
                log_file,
                mode="a",
                encoding="utf-8",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
        )
    except OSError as e:
        print(f"Warning: file logging disabled: {e}", file=sys.stderr)

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )
    return log_file


def report_attempt(event: AttemptEvent) -> None:
    """Render rotation progress for the user."""
    if event.will_retry:
        print(
            f"Key {event.position}/{event.pool_size} failed "
            f"({type(event.error).__name__}), retrying",
            file=sys.stderr,
        )


def run(args: argparse.Namespace, client: ParleyClient) -> int:
    if args.list:
        for position, summary in enumerate(client.list_conversations(), start=1):
            print(
                f"{position:>3}  {summary.id:<48} {summary.turn_count:>3} turns  "
                f"{summary.updated_at:%Y-%m-%d %H:%M}  {summary.preview}"
            )
        return EXIT_OK

    if args.list_models:
        for info in client.list_models(args.model):
            print(info.id)
        return EXIT_OK

    prompt = " ".join(args.prompt).strip()
    if not prompt and not sys.stdin.isatty():
        prompt = sys.stdin.read().strip()
    if not prompt:
        print("Error: no prompt given", file=sys.stderr)
        return EXIT_CONFIG

    result = client.converse(prompt, selector=args.selector, model=args.model)
    print(result.text)
    print(f"[{result.conversation_id}]", file=sys.stderr)
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    load_env_file()

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    log_file = configure_logging(settings)
    logger.info(f"parley {__version__} starting, logging to {log_file}")

    client = ParleyClient(settings, on_attempt=report_attempt)
    try:
        return run(args, client)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except ConversationLookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SELECTOR
    except AllCredentialsExhaustedError as e:
        print(f"Error: {e}. Try again later or add more keys.", file=sys.stderr)
        return EXIT_EXHAUSTED
    except AuthenticationError as e:
        print(f"Authentication failed: {e}. Check your API key(s).", file=sys.stderr)
        return EXIT_AUTH
    except LLMProviderError as e:
        print(f"Provider error: {e}", file=sys.stderr)
        return EXIT_PROVIDER
    except ResponseNotSavedError as e:
        print(e.response_text)
        print(f"Warning: {e}", file=sys.stderr)
        return EXIT_NOT_SAVED
    except StorageError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        return EXIT_STORAGE
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
