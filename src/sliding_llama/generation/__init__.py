from __future__ import annotations

from sliding_llama.generation.loop import GenerationChunk, GenerationLoop, GenerationResult, LoopState
from sliding_llama.generation.stop_policy import StopDecision, StopPolicy, StopReason

__all__ = [
    "GenerationChunk",
    "GenerationLoop",
    "GenerationResult",
    "LoopState",
    "StopDecision",
    "StopPolicy",
    "StopReason",
]
