"""Greedy (argmax) token selection over scorer logits."""

from __future__ import annotations

import numpy as np


def prediction_position(window_len: int, capacity: int) -> int:
    """Index of the last real, non-padding position in a scorer output."""
    return min(window_len, capacity) - 1


def greedy_select(logits: np.ndarray) -> int:
    """Return the id with the largest logit; the lowest id wins exact ties.

    Args:
        logits: One logit vector of shape ``(vocab_size,)``.

    Raises:
        ValueError: If the vector is empty or not one-dimensional.
    """
    logits = np.asarray(logits)
    if logits.ndim != 1 or logits.size == 0:
        raise ValueError(f"Expected a non-empty logit vector, got shape {logits.shape}")
    # np.argmax returns the first occurrence of the maximum.
    return int(np.argmax(logits))
