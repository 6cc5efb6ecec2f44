"""
Scorer seam: the typed boundary between the generation loop and a model.

A scorer receives a fixed-length ``[input_ids, attention_mask]`` pair and
returns one logit vector per position. What runs behind it (Core ML, ONNX,
MLX, a remote service) is the provider's business.
"""

from __future__ import annotations

import importlib
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import numpy as np

from sliding_llama.errors import ScorerError, ScorerTimeoutError
from sliding_llama.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Scorer(Protocol):
    """Next-token scorer with a fixed maximum sequence length."""

    def score(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        """Return logits shaped ``(capacity, vocab_size)`` (or ``(1, capacity, vocab_size)``)."""
        ...


@dataclass
class ScorerInputs:
    """Trailing-padded scorer inputs, reusable across decoding steps.

    Attributes:
        input_ids: int32 array of shape ``(capacity,)``.
        attention_mask: int32 array of shape ``(capacity,)``; 1 on real ids.
        pad_id: Id written into padded positions.
        length: Number of real (unpadded) positions currently filled.
    """

    input_ids: np.ndarray
    attention_mask: np.ndarray
    pad_id: int
    length: int = 0

    @classmethod
    def allocate(cls, capacity: int, pad_id: int) -> "ScorerInputs":
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        return cls(
            input_ids=np.full(capacity, pad_id, dtype=np.int32),
            attention_mask=np.zeros(capacity, dtype=np.int32),
            pad_id=pad_id,
        )

    @property
    def capacity(self) -> int:
        return int(self.input_ids.shape[0])

    def fill(self, window: Sequence[int]) -> "ScorerInputs":
        """Overwrite the buffers with ``window`` followed by padding."""
        count = min(len(window), self.capacity)
        self.input_ids.fill(self.pad_id)
        self.attention_mask.fill(0)
        if count:
            self.input_ids[:count] = np.asarray(window[:count], dtype=np.int32)
            self.attention_mask[:count] = 1
        self.length = count
        return self


def build_scorer_inputs(window: Sequence[int], capacity: int, pad_id: int) -> ScorerInputs:
    return ScorerInputs.allocate(capacity, pad_id).fill(window)


def normalize_logits(raw: Any) -> np.ndarray:
    """Coerce scorer output to a 2-D ``(positions, vocab_size)`` array.

    Raises:
        ScorerError: If the output cannot be read as per-position logits.
    """
    try:
        logits = np.asarray(raw, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise ScorerError(f"Scorer returned non-numeric logits: {e}") from e
    if logits.ndim == 3 and logits.shape[0] == 1:
        logits = logits[0]
    if logits.ndim != 2:
        raise ScorerError(f"Expected per-position logits, got shape {logits.shape}")
    return logits


class BoundedScorer:
    """Run scorer calls on a worker thread and wait at most ``timeout`` seconds.

    Only one call is in flight at a time. A timed-out call cannot be
    cancelled; it keeps the single worker busy and the next call queues
    behind it.
    """

    def __init__(self, scorer: Scorer, timeout: float = 120.0) -> None:
        self.scorer = scorer
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scorer")
        self._gate = threading.BoundedSemaphore(1)

    def score(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        if not self._gate.acquire(blocking=False):
            raise ScorerError("A scorer call is already in flight for this session")
        try:
            future = self._executor.submit(self.scorer.score, input_ids, attention_mask)
            try:
                raw = future.result(timeout=self.timeout)
            except FutureTimeoutError as e:
                logger.error("Scorer call exceeded %.1fs; abandoning the wait", self.timeout)
                raise ScorerTimeoutError(self.timeout) from e
            except ScorerError:
                raise
            except Exception as e:
                raise ScorerError(f"Scorer call failed: {e}") from e
            return normalize_logits(raw)
        finally:
            self._gate.release()

    def close(self) -> None:
        self._executor.shutdown(wait=False)


class ScriptedScorer:
    """Deterministic scorer that makes a fixed id sequence the argmax, step by step.

    Once the script is exhausted ``fallback_id`` (EOS by convention) wins;
    with ``cycle`` the script then starts over.
    Every call is recorded in ``calls`` as ``(input_ids, attention_mask)``
    copies for inspection.
    """

    def __init__(
        self,
        token_ids: Sequence[int],
        vocab_size: int,
        capacity: int,
        fallback_id: int = 2,
        cycle: bool = False,
    ) -> None:
        self.token_ids = list(token_ids)
        self.vocab_size = vocab_size
        self.capacity = capacity
        self.fallback_id = fallback_id
        self.cycle = cycle
        self.calls: list[tuple[np.ndarray, np.ndarray]] = []

    def score(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        step = len(self.calls)
        if self.cycle:
            step %= len(self.token_ids) + 1
        self.calls.append((np.array(input_ids, copy=True), np.array(attention_mask, copy=True)))
        target = self.token_ids[step] if step < len(self.token_ids) else self.fallback_id
        logits = np.zeros((self.capacity, self.vocab_size), dtype=np.float32)
        position = max(int(np.sum(attention_mask)) - 1, 0)
        logits[position, target] = 1.0
        return logits


ScorerFactory = Callable[..., Scorer]


def load_scorer_factory(spec: str) -> ScorerFactory:
    """Resolve a ``"package.module:callable"`` string to a scorer factory.

    Raises:
        ValueError: If the string is malformed or the attribute is not callable.
        ImportError: If the module cannot be imported.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Scorer factory must look like 'package.module:callable', got {spec!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{spec!r} does not name a callable")
    return factory
