"""Model/session providers: acquire the resource a scorer needs, with a bounded wait."""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Protocol

from sliding_llama.errors import ScorerError, ScorerTimeoutError
from sliding_llama.logging import get_logger
from sliding_llama.runtime.scorer import Scorer, ScorerFactory, ScriptedScorer

logger = get_logger(__name__)

DEFAULT_LOAD_TIMEOUT = 180.0


class ModelProvider(Protocol):
    """Owns model loading/unloading and reports the scorer's fixed capacity."""

    @property
    def max_sequence_length(self) -> int:
        ...

    def load(self) -> Scorer:
        ...

    def close(self) -> None:
        ...


def load_with_timeout(provider: ModelProvider, timeout: float = DEFAULT_LOAD_TIMEOUT) -> Scorer:
    """Call ``provider.load()`` on a worker thread and wait at most ``timeout`` seconds.

    Raises:
        ScorerTimeoutError: If loading does not finish in time. The load keeps
            running in the background; it cannot be aborted.
        ScorerError: If loading fails.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-load")
    try:
        future = executor.submit(provider.load)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            logger.error("Model load exceeded %.1fs", timeout)
            raise ScorerTimeoutError(timeout, what="Model load") from e
        except ScorerError:
            raise
        except Exception as e:
            raise ScorerError(f"Model load failed: {e}") from e
    finally:
        executor.shutdown(wait=False)


class FactoryModelProvider:
    """Provider wrapping a user-supplied scorer factory.

    The factory is called as ``factory(model_path=..., capacity=...)`` and
    must return a Scorer.
    """

    def __init__(self, factory: ScorerFactory, model_path: str, capacity: int, **kwargs: Any) -> None:
        self.factory = factory
        self.model_path = model_path
        self._capacity = capacity
        self.kwargs = kwargs
        self._scorer: Scorer | None = None

    @property
    def max_sequence_length(self) -> int:
        # A loaded scorer that reports its own length wins over the configured one.
        reported = getattr(self._scorer, "max_sequence_length", None)
        return int(reported) if reported else self._capacity

    def load(self) -> Scorer:
        if self._scorer is None:
            logger.info("Loading scorer for %s (capacity %d)", self.model_path, self._capacity)
            self._scorer = self.factory(model_path=self.model_path, capacity=self._capacity, **self.kwargs)
        return self._scorer

    def close(self) -> None:
        closer = getattr(self._scorer, "close", None)
        if callable(closer):
            closer()
        self._scorer = None


class ScriptedModelProvider:
    """Provider for demos and tests: serves a ScriptedScorer."""

    def __init__(
        self,
        token_ids: Sequence[int],
        vocab_size: int,
        capacity: int = 64,
        fallback_id: int = 2,
        cycle: bool = False,
    ) -> None:
        self.token_ids = list(token_ids)
        self.vocab_size = vocab_size
        self._capacity = capacity
        self.fallback_id = fallback_id
        self.cycle = cycle

    @property
    def max_sequence_length(self) -> int:
        return self._capacity

    def load(self) -> ScriptedScorer:
        return ScriptedScorer(
            self.token_ids,
            vocab_size=self.vocab_size,
            capacity=self._capacity,
            fallback_id=self.fallback_id,
            cycle=self.cycle,
        )

    def close(self) -> None:
        return None
