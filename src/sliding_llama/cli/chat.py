from __future__ import annotations

import sys
import time
from pathlib import Path

from rich.console import Console

from sliding_llama.chat.session import ChatSession, build_session
from sliding_llama.cli.chat_commands import CommandOutcome, handle_user_command
from sliding_llama.cli.cli_args import build_parser, config_overrides
from sliding_llama.cli.demo import demo_provider, demo_vocabulary
from sliding_llama.config import EngineConfig, load_engine_config
from sliding_llama.errors import ConfigError, ScorerError, SessionBusyError, VocabError
from sliding_llama.generation.stop_policy import StopReason
from sliding_llama.logging import configure_debug_file_logging, configure_logging, get_logger
from sliding_llama.runtime.metrics import format_timings
from sliding_llama.runtime.provider import FactoryModelProvider
from sliding_llama.runtime.scorer import load_scorer_factory
from sliding_llama.runtime.tokenizer_loader import build_tokenizer

logger = get_logger(__name__)

__all__ = ["main", "run_chat"]

DEFAULT_CAPACITY = 64


def create_session(args, config: EngineConfig) -> ChatSession:
    if args.demo:
        vocab = demo_vocabulary()
        provider = demo_provider(build_tokenizer(vocab, config))
        return build_session(provider, config, vocab=vocab)

    if not args.model:
        raise ConfigError("--model is required unless --demo is given")
    if not args.scorer:
        raise ConfigError("--scorer is required to run a real model")
    factory = load_scorer_factory(args.scorer)
    provider = FactoryModelProvider(
        factory,
        model_path=args.model,
        capacity=config.max_sequence_length or DEFAULT_CAPACITY,
    )
    return build_session(provider, config, model_path=args.model)


def run_chat(session: ChatSession, console: Console, stdin=None) -> None:
    """Read-eval-print loop over one session until quit or EOF."""
    stdin = stdin or sys.stdin
    console.print("[bold]Sliding Window LLaMA Chat[/bold]")
    console.print("Commands: 'quit', 'reset', 'status', 'help'\n")

    while True:
        console.print("You: ", end="")
        line = stdin.readline()
        if not line:
            console.print("\nGoodbye!")
            break
        user_input = line.strip()
        if not user_input:
            continue

        outcome = handle_user_command(user_input, session, console)
        if outcome is CommandOutcome.QUIT:
            console.print("Goodbye!")
            break
        if outcome is CommandOutcome.HANDLED:
            continue

        console.print("Assistant: ", end="")
        start = time.perf_counter()
        try:
            result = session.submit(
                user_input,
                on_text=lambda text: console.out(text, end="", highlight=False),
            )
        except SessionBusyError as e:
            console.print(f"\n[red]{e}[/red]")
            continue
        elapsed = time.perf_counter() - start
        console.print()
        logger.debug("Request timings: %s", format_timings(result.timings, result.steps))

        if result.stop_reason is StopReason.SCORER_ERROR:
            console.print(f"[red]Inference failed:[/red] {result.error}")
        elif result.stop_reason is StopReason.SEQUENCE_LIMIT:
            console.print("[yellow]Context is full; type 'reset' to start over.[/yellow]")
        console.print(
            f"[dim]Generated {result.steps} tokens in {elapsed:.1f} seconds "
            f"({result.history_length} total tokens, stop: {result.stop_reason.value})[/dim]\n"
        )


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    console = Console()

    configure_logging(args.log_level)
    if args.debug:
        configure_debug_file_logging(Path(args.debug_file))

    try:
        config = load_engine_config(args.config, overrides=config_overrides(args))
        session = create_session(args, config)
    except (ConfigError, VocabError, ScorerError, ImportError, ValueError) as e:
        console.print(f"[red]Failed to initialize:[/red] {e}")
        raise SystemExit(1) from e

    try:
        run_chat(session, console)
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    finally:
        session.close()


if __name__ == "__main__":
    main()
