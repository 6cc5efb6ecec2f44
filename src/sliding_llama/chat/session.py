from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from sliding_llama.config import EngineConfig
from sliding_llama.errors import SessionBusyError
from sliding_llama.generation.loop import (
    GenerationChunk,
    GenerationLoop,
    GenerationResult,
    LoopState,
)
from sliding_llama.logging import get_logger
from sliding_llama.runtime.context import ContextWindow
from sliding_llama.runtime.provider import ModelProvider, load_with_timeout
from sliding_llama.runtime.scorer import BoundedScorer, Scorer
from sliding_llama.runtime.tokenizer_loader import build_tokenizer, load_tokenizer
from sliding_llama.runtime.tokenizer_spm import GreedySentencePieceTokenizer
from sliding_llama.runtime.vocabulary import Vocabulary

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SessionStatus:
    history_length: int
    capacity: int
    sliding_window_active: bool
    state: str


class ChatSession:
    """One conversation: a shared tokenizer plus exclusively owned history.

    At most one request runs at a time; a second concurrent submit raises
    SessionBusyError instead of queueing.
    """

    def __init__(
        self,
        tokenizer: GreedySentencePieceTokenizer,
        scorer: Scorer,
        capacity: int,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.tokenizer = tokenizer
        self.capacity = capacity
        self.context = ContextWindow(structural_keep=self.config.structural_keep)
        self.loop = GenerationLoop(
            tokenizer,
            self.context,
            scorer,
            capacity,
            config=self.config,
        )
        self._gate = threading.BoundedSemaphore(1)

    @property
    def vocabulary(self) -> Vocabulary:
        return self.tokenizer.vocab

    def _acquire(self) -> None:
        if not self._gate.acquire(blocking=False):
            raise SessionBusyError("This session is already generating a response")

    def stream(self, text: str, max_new_tokens: int | None = None) -> Iterator[GenerationChunk]:
        """Stream fragments for one request; the gate is held until the stream ends."""
        self._acquire()
        try:
            yield from self.loop.stream(text, max_new_tokens=max_new_tokens)
        finally:
            self._gate.release()

    def submit(
        self,
        text: str,
        on_text: Callable[[str], None] | None = None,
        max_new_tokens: int | None = None,
    ) -> GenerationResult:
        self._acquire()
        try:
            return self.loop.run(text, on_text=on_text, max_new_tokens=max_new_tokens)
        finally:
            self._gate.release()

    def reset(self) -> None:
        self._acquire()
        try:
            self.loop.reset()
            logger.info("Conversation history reset")
        finally:
            self._gate.release()

    def status(self) -> SessionStatus:
        return SessionStatus(
            history_length=len(self.context),
            capacity=self.capacity,
            sliding_window_active=self.context.is_sliding(
                self.capacity, self.config.generation_headroom
            ),
            state=self.loop.state.value,
        )

    @property
    def busy(self) -> bool:
        return self.loop.state in (LoopState.PREFILLED, LoopState.DECODING)

    def close(self) -> None:
        closer = getattr(self.loop.scorer, "close", None)
        if callable(closer):
            closer()


def resolve_capacity(provider: ModelProvider, config: EngineConfig) -> int:
    """Read the scorer capacity once; a configured max_sequence_length wins."""
    if config.max_sequence_length is not None:
        return config.max_sequence_length
    return int(provider.max_sequence_length)


def build_session(
    provider: ModelProvider,
    config: EngineConfig | None = None,
    *,
    model_path: str | Path | None = None,
    vocab: Vocabulary | None = None,
) -> ChatSession:
    """Create a ChatSession from a provider plus a model dir or a shared vocabulary.

    The scorer is loaded with the configured bounded wait and wrapped so
    every call also has a bounded wait.

    Raises:
        VocabError: If the vocabulary cannot be loaded.
        ScorerError: If the model load fails or times out.
        ValueError: If neither ``model_path`` nor ``vocab`` is given.
    """
    config = config or EngineConfig()
    if vocab is not None:
        tokenizer = build_tokenizer(vocab, config)
    elif model_path is not None:
        tokenizer = load_tokenizer(model_path, config)
    else:
        raise ValueError("build_session needs a model_path or a vocabulary")

    scorer = load_with_timeout(provider, timeout=config.load_timeout)
    capacity = resolve_capacity(provider, config)
    logger.info("Scorer ready; sequence length %d", capacity)
    return ChatSession(
        tokenizer,
        BoundedScorer(scorer, timeout=config.scorer_timeout),
        capacity,
        config=config,
    )
