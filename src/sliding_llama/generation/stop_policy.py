from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sliding_llama.config import EngineConfig


class StopReason(str, Enum):
    EOS = "eos"
    UNK = "unk"
    LINE_BREAK = "line_break"
    PUNCTUATION = "punctuation"
    SEQUENCE_LIMIT = "sequence_limit"
    TOKEN_BUDGET_EXHAUSTED = "token_budget_exhausted"
    SCORER_ERROR = "scorer_error"


@dataclass(frozen=True)
class StopDecision:
    stop: bool
    reason: StopReason | None = None
    append_token: bool = False


CONTINUE = StopDecision(stop=False)


class StopPolicy:
    """Decide after each greedy pick whether generation ends.

    EOS and UNK always stop and are never appended. A line break stops the
    same way when ``stop_on_line_break`` is enabled. Sentence-ending
    punctuation stops only after the configured minimum number of steps and
    only when the recent text shows no open code construct; the punctuation
    token itself is appended first.
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config

    def check(
        self,
        token_id: int,
        step: int,
        token_text: str,
        generated_text: str,
        is_continuation: bool = False,
    ) -> StopDecision:
        cfg = self.config
        if token_id == cfg.eos_id:
            return StopDecision(stop=True, reason=StopReason.EOS)
        if token_id == cfg.unk_id:
            return StopDecision(stop=True, reason=StopReason.UNK)
        if cfg.stop_on_line_break and cfg.line_break_id is not None and token_id == cfg.line_break_id:
            return StopDecision(stop=True, reason=StopReason.LINE_BREAK)

        if not any(mark in token_text for mark in cfg.stop_punctuation):
            return CONTINUE
        if step <= cfg.min_steps_for(is_continuation):
            return CONTINUE
        if self.inside_code(generated_text + token_text):
            return CONTINUE
        return StopDecision(stop=True, reason=StopReason.PUNCTUATION, append_token=True)

    def inside_code(self, text: str) -> bool:
        """True if the trailing lookback window holds a code fence or statement keyword."""
        lookback = self.config.stop_lookback_chars
        tail = text[-lookback:] if lookback else ""
        return any(marker in tail for marker in self.config.code_markers)
