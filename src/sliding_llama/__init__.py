"""Greedy SentencePiece tokenization and sliding-window generation for fixed-length LLaMA scorers."""

from sliding_llama.chat.session import ChatSession, SessionStatus, build_session
from sliding_llama.config import EngineConfig, load_engine_config
from sliding_llama.errors import (
    ConfigError,
    ScorerError,
    ScorerTimeoutError,
    SessionBusyError,
    SlidingLlamaError,
    VocabError,
    VocabErrorKind,
)
from sliding_llama.generation.loop import GenerationChunk, GenerationLoop, GenerationResult
from sliding_llama.generation.stop_policy import StopPolicy, StopReason
from sliding_llama.runtime.context import ContextWindow, sliding_window
from sliding_llama.runtime.tokenizer_spm import GreedySentencePieceTokenizer
from sliding_llama.runtime.vocabulary import Vocabulary

__version__ = "0.1.0"

__all__ = [
    "ChatSession",
    "ConfigError",
    "ContextWindow",
    "EngineConfig",
    "GenerationChunk",
    "GenerationLoop",
    "GenerationResult",
    "GreedySentencePieceTokenizer",
    "ScorerError",
    "ScorerTimeoutError",
    "SessionBusyError",
    "SessionStatus",
    "SlidingLlamaError",
    "StopPolicy",
    "StopReason",
    "Vocabulary",
    "VocabError",
    "VocabErrorKind",
    "build_session",
    "load_engine_config",
    "sliding_window",
]
