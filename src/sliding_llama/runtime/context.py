from __future__ import annotations

from collections.abc import Iterable, Sequence

from sliding_llama.logging import get_logger

logger = get_logger(__name__)

DEFAULT_STRUCTURAL_KEEP = 8
_LOG_EVERY_TOKENS = 20


def sliding_window(
    history: Sequence[int],
    max_len: int,
    structural_keep: int = DEFAULT_STRUCTURAL_KEEP,
) -> list[int]:
    """Bound a token history to ``max_len`` ids, keeping its opening structure.

    The first ``structural_keep`` ids (BOS and the first instruction markers)
    are kept verbatim, the remaining capacity is filled from the tail, and
    whatever lies between is dropped. The result always has exactly
    ``min(max_len, len(history))`` ids. ``history`` is not modified.

    Args:
        history: Full conversation token history.
        max_len: Maximum number of ids in the window.
        structural_keep: Length of the preserved prefix.

    Returns:
        A new list holding the window.
    """
    if max_len <= 0:
        return []
    if len(history) <= max_len:
        return list(history)

    structural = min(structural_keep, len(history), max_len)
    recent_budget = max_len - structural
    start_recent = max(structural, len(history) - recent_budget)
    return list(history[:structural]) + list(history[start_recent:])


class ContextWindow:
    """Append-only token history for one session plus its windowing policy."""

    def __init__(self, structural_keep: int = DEFAULT_STRUCTURAL_KEEP) -> None:
        if structural_keep < 0:
            raise ValueError("structural_keep must be non-negative")
        self.structural_keep = structural_keep
        self._history: list[int] = []
        self._last_logged_size = 0

    @property
    def history(self) -> tuple[int, ...]:
        return tuple(self._history)

    def __len__(self) -> int:
        return len(self._history)

    def append(self, token_ids: Iterable[int]) -> None:
        self._history.extend(int(t) for t in token_ids)

    def append_one(self, token_id: int) -> None:
        self._history.append(int(token_id))

    def reset(self) -> None:
        self._history.clear()
        self._last_logged_size = 0

    def window(self, capacity: int, reserved: int) -> list[int]:
        """Return the ids to feed a scorer of ``capacity`` positions.

        Recomputed from the full history on every call; ``reserved`` positions
        are left free for generation.
        """
        max_len = capacity - reserved
        window = sliding_window(self._history, max_len, self.structural_keep)
        if len(window) < len(self._history) and len(self._history) > self._last_logged_size + _LOG_EVERY_TOKENS:
            logger.debug("Sliding window: %d -> %d tokens", len(self._history), len(window))
            self._last_logged_size = len(self._history)
        return window

    def is_sliding(self, capacity: int, reserved: int) -> bool:
        return len(self._history) > capacity - reserved
