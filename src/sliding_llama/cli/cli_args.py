from __future__ import annotations

import argparse

from sliding_llama.logging import LOG_LEVEL_ENV_VAR, parse_level


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser for chat."""
    parser = argparse.ArgumentParser(
        description="Chat with a fixed-length LLaMA scorer using a sliding context window."
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model directory containing tokenizer.json (required unless --demo).",
    )
    parser.add_argument(
        "--scorer",
        type=str,
        default=None,
        help="Scorer factory as 'package.module:callable', called with model_path and capacity.",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run with a built-in vocabulary and a scripted scorer (no model needed).",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to an engine config JSON (default: $SLIDING_LLAMA_CONFIG).",
    )
    parser.add_argument(
        "--max-sequence-length",
        type=int,
        default=None,
        help="Scorer capacity in tokens (overrides the provider value).",
    )
    parser.add_argument(
        "--max-new-tokens",
        type=int,
        default=None,
        help="Maximum number of tokens generated per request.",
    )
    parser.add_argument(
        "--structural-keep",
        type=int,
        default=None,
        help="Oldest history tokens always kept in the window.",
    )
    parser.add_argument(
        "--generation-headroom",
        type=int,
        default=None,
        help="Positions reserved below capacity for generation.",
    )
    parser.add_argument(
        "--min-steps-before-stop",
        type=int,
        default=None,
        help="Steps before sentence punctuation may end a response.",
    )
    parser.add_argument(
        "--min-steps-before-stop-continue",
        type=int,
        default=None,
        help="Steps before sentence punctuation may end a 'continue' response.",
    )
    parser.add_argument(
        "--max-token-length",
        type=int,
        default=None,
        help="Longest substring tried by the greedy tokenizer.",
    )
    parser.add_argument("--unk-id", type=int, default=None, help="UNK token id.")
    parser.add_argument("--bos-id", type=int, default=None, help="BOS token id.")
    parser.add_argument("--eos-id", type=int, default=None, help="EOS token id.")
    parser.add_argument(
        "--line-break-id",
        type=int,
        default=None,
        help="Line-break token id (used with --stop-on-line-break).",
    )
    parser.add_argument(
        "--stop-on-line-break",
        action="store_true",
        default=None,
        help="End a response at the first generated line break.",
    )
    parser.add_argument(
        "--scorer-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a single scorer call.",
    )
    parser.add_argument(
        "--load-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the model to load.",
    )
    parser.add_argument(
        "--log-level",
        type=parse_level,
        default=None,
        help=f"Package log level, e.g. debug or warning (default: ${LOG_LEVEL_ENV_VAR} or info).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Write debug logs (window sizes, stop reasons, timings) to --debug-file.",
    )
    parser.add_argument(
        "--debug-file",
        type=str,
        default="logs/sliding-llama-debug.log",
        help="Debug log path (default: logs/sliding-llama-debug.log).",
    )
    return parser


CONFIG_ARGS = (
    "max_sequence_length",
    "max_new_tokens",
    "structural_keep",
    "generation_headroom",
    "min_steps_before_stop",
    "min_steps_before_stop_continue",
    "max_token_length",
    "unk_id",
    "bos_id",
    "eos_id",
    "line_break_id",
    "stop_on_line_break",
    "scorer_timeout",
    "load_timeout",
)


def config_overrides(args: argparse.Namespace) -> dict[str, object]:
    """Collect EngineConfig overrides from parsed args (unset options are None)."""
    return {name: getattr(args, name, None) for name in CONFIG_ARGS}
