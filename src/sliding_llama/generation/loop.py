"""
Greedy autoregressive generation over a sliding context window.

Each decoding step rebuilds the window from the full history, runs the
scorer on the padded window, reads the logits at the last real position,
and takes the argmax. There is no KV cache: the scorer sees the whole window
every step, which is what a fixed-shape exported model expects.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from sliding_llama.config import EngineConfig
from sliding_llama.errors import ScorerError, SessionBusyError
from sliding_llama.generation.stop_policy import StopPolicy, StopReason
from sliding_llama.logging import get_logger
from sliding_llama.runtime.context import ContextWindow
from sliding_llama.runtime.detokenizer import StreamingDetokenizer
from sliding_llama.runtime.metrics import TimingStats, timer
from sliding_llama.runtime.sampler import greedy_select, prediction_position
from sliding_llama.runtime.scorer import Scorer, ScorerInputs, normalize_logits
from sliding_llama.runtime.tokenizer import TokenizerProtocol

logger = get_logger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    PREFILLED = "prefilled"
    DECODING = "decoding"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationChunk:
    """One streamed piece of output.

    Accepted tokens arrive with ``finish_reason`` None. The last chunk of
    every request has ``token`` None and the stop reason; its ``text`` holds
    whatever the detokenizer still buffered (usually empty).
    """

    token: int | None
    text: str
    step: int
    finish_reason: StopReason | None = None


@dataclass
class GenerationResult:
    text: str
    stop_reason: StopReason
    tokens: list[int] = field(default_factory=list)
    steps: int = 0
    prompt_tokens: int = 0
    history_length: int = 0
    error: ScorerError | None = None
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.error is not None


class GenerationLoop:
    """Prefill + greedy decoding state machine for a single conversation.

    States move ``IDLE -> PREFILLED -> DECODING -> {STOPPED, FAILED}``; a
    stopped or failed loop accepts the next request.
    """

    def __init__(
        self,
        tokenizer: TokenizerProtocol,
        context: ContextWindow,
        scorer: Scorer,
        capacity: int,
        config: EngineConfig | None = None,
        stop_policy: StopPolicy | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        if capacity <= self.config.generation_headroom:
            raise ValueError(
                f"Scorer capacity {capacity} must exceed generation_headroom "
                f"{self.config.generation_headroom}"
            )
        self.tokenizer = tokenizer
        self.context = context
        self.scorer = scorer
        self.capacity = capacity
        self.stop_policy = stop_policy or StopPolicy(self.config)
        self.inputs = ScorerInputs.allocate(capacity, self.config.effective_pad_id)
        self.state = LoopState.IDLE
        self.last_error: ScorerError | None = None
        self.last_prompt_tokens = 0
        self.timings = TimingStats()
        self._history_warned = False

    def is_continuation(self, user_text: str) -> bool:
        """``continue``/``more`` requests resume the previous answer without new input."""
        text = user_text.strip()
        markers = self.config.continue_markers
        if not markers:
            return False
        return text in markers or text.startswith(markers[0])

    def _window(self) -> list[int]:
        """Scorer input for this step.

        With sliding disabled the raw history is used, so a history that has
        grown to capacity - 1 ends the request with SEQUENCE_LIMIT.
        """
        if self.config.sliding_window:
            return self.context.window(self.capacity, self.config.generation_headroom)
        return list(self.context.history)

    def _score(self, window: list[int]) -> int:
        inputs = self.inputs.fill(window)
        try:
            with timer(self.timings, "scorer"):
                raw = self.scorer.score(inputs.input_ids, inputs.attention_mask)
        except ScorerError:
            raise
        except Exception as e:
            raise ScorerError(f"Scorer call failed: {e}") from e

        logits = normalize_logits(raw)
        position = prediction_position(len(window), self.capacity)
        if position < 0 or position >= logits.shape[0]:
            raise ScorerError(
                f"Scorer returned {logits.shape[0]} positions; need position {position}"
            )
        try:
            return greedy_select(logits[position])
        except ValueError as e:
            raise ScorerError(str(e)) from e

    def _finish(
        self, reason: StopReason, step: int, detokenizer: StreamingDetokenizer
    ) -> GenerationChunk:
        self.state = LoopState.FAILED if reason is StopReason.SCORER_ERROR else LoopState.STOPPED
        logger.info(
            "Generation stopped: %s after %d tokens (%d in history)",
            reason.value,
            step,
            len(self.context),
        )
        # Byte tokens still waiting on a UTF-8 continuation are flushed as U+FFFD.
        tail = detokenizer.finalize()
        return GenerationChunk(token=None, text=tail, step=step, finish_reason=reason)

    def stream(self, user_text: str, max_new_tokens: int | None = None) -> Iterator[GenerationChunk]:
        """
        Submit one request and stream its output.

        Args:
            user_text: New user input, or a continuation marker.
            max_new_tokens: Per-request cap (defaults to the config value).

        Yields:
            GenerationChunk per accepted token, then one final chunk carrying
            the stop reason.

        Raises:
            SessionBusyError: If a request is already being decoded.
        """
        if self.state in (LoopState.PREFILLED, LoopState.DECODING):
            raise SessionBusyError("Generation already in progress")

        cfg = self.config
        budget = max_new_tokens if max_new_tokens is not None else cfg.max_new_tokens
        if budget < 1:
            raise ValueError("max_new_tokens must be at least 1")
        self.last_error = None
        self.timings = TimingStats()

        # With nothing to resume, a continuation marker is treated as ordinary input.
        continuation = self.is_continuation(user_text) and len(self.context) > 0
        if continuation:
            self.last_prompt_tokens = 0
            logger.info("Continuing previous response (%d tokens in history)", len(self.context))
        else:
            prompt_ids = self.tokenizer.encode_chat(user_text)
            self.context.append(prompt_ids)
            self.last_prompt_tokens = len(prompt_ids)
            logger.info(
                "Added %d tokens to conversation (%d total)",
                len(prompt_ids),
                len(self.context),
            )
        self.state = LoopState.PREFILLED

        detokenizer = self.tokenizer.make_detokenizer()
        generated_text = ""
        step = 0
        self.state = LoopState.DECODING
        try:
            while True:
                with timer(self.timings, "window"):
                    window = self._window()
                if len(window) >= self.capacity - 1:
                    yield self._finish(StopReason.SEQUENCE_LIMIT, step, detokenizer)
                    return

                try:
                    best_id = self._score(window)
                except ScorerError as e:
                    self.last_error = e
                    logger.error("Scorer failed at step %d: %s", step, e)
                    yield self._finish(StopReason.SCORER_ERROR, step, detokenizer)
                    return

                token_text = self.tokenizer.decode_token(best_id)
                decision = self.stop_policy.check(
                    best_id, step, token_text, generated_text, is_continuation=continuation
                )
                if decision.stop and not decision.append_token:
                    yield self._finish(decision.reason, step, detokenizer)
                    return

                self.context.append_one(best_id)
                segment = detokenizer.add_token(best_id)
                generated_text += segment
                step += 1
                yield GenerationChunk(token=best_id, text=segment, step=step)

                if len(self.context) > cfg.history_warning_tokens and not self._history_warned:
                    logger.warning(
                        "Conversation has %d tokens; consider a reset", len(self.context)
                    )
                    self._history_warned = True

                if decision.stop:
                    yield self._finish(decision.reason, step, detokenizer)
                    return
                if step >= budget:
                    yield self._finish(StopReason.TOKEN_BUDGET_EXHAUSTED, step, detokenizer)
                    return
        finally:
            if self.state in (LoopState.PREFILLED, LoopState.DECODING):
                logger.debug("Generation abandoned by caller at step %d", step)
                self.state = LoopState.STOPPED

    def run(
        self,
        user_text: str,
        on_text: Callable[[str], None] | None = None,
        max_new_tokens: int | None = None,
    ) -> GenerationResult:
        """Drain stream() into a GenerationResult, forwarding text to ``on_text``."""
        parts: list[str] = []
        tokens: list[int] = []
        reason = StopReason.TOKEN_BUDGET_EXHAUSTED
        steps = 0
        for chunk in self.stream(user_text, max_new_tokens=max_new_tokens):
            steps = chunk.step
            if chunk.token is not None:
                tokens.append(chunk.token)
            if chunk.text:
                parts.append(chunk.text)
                if on_text is not None:
                    on_text(chunk.text)
            if chunk.finish_reason is not None:
                reason = chunk.finish_reason
                break
        return GenerationResult(
            text="".join(parts),
            stop_reason=reason,
            tokens=tokens,
            steps=steps,
            prompt_tokens=self.last_prompt_tokens,
            history_length=len(self.context),
            error=self.last_error,
            timings=self.timings.snapshot(),
        )

    def reset(self) -> None:
        self.context.reset()
        self.state = LoopState.IDLE
        self.last_error = None
        self._history_warned = False
