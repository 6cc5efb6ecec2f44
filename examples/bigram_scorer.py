#!/usr/bin/env python3
"""
Example scorer factory for ``--scorer``.

Scores each position from a bigram table stored as ``bigram.npy`` in the
model directory (shape ``(vocab_size, vocab_size)``, row = previous id).
Run with the examples directory on the import path:

    PYTHONPATH=examples sliding-llama-chat --model ./my-model --scorer bigram_scorer:make_scorer
"""

from pathlib import Path

import numpy as np


class BigramScorer:
    def __init__(self, table: np.ndarray, capacity: int):
        self.table = table
        self.max_sequence_length = capacity

    def score(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        # Padded positions get a row too; the loop only reads the last real one.
        return self.table[np.asarray(input_ids, dtype=np.int64)]


def make_scorer(model_path: str, capacity: int) -> BigramScorer:
    table = np.load(Path(model_path) / "bigram.npy")
    if table.ndim != 2 or table.shape[0] != table.shape[1]:
        raise ValueError(f"bigram.npy must be square, got shape {table.shape}")
    return BigramScorer(table.astype(np.float32), capacity)
