"""
SentencePiece vocabulary loading for sliding-llama.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict

from sliding_llama.errors import VocabError, VocabErrorKind
from sliding_llama.logging import get_logger

logger = get_logger(__name__)

UNK_TOKEN = "<unk>"
BOS_TOKEN = "<s>"
EOS_TOKEN = "</s>"
LINE_BREAK_TOKEN = "<0x0A>"


class Vocabulary:
    """Immutable bidirectional token <-> id mapping."""

    def __init__(self, token_to_id: Mapping[str, int]):
        """
        Build a vocabulary from a token -> id mapping.

        Args:
            token_to_id: Source mapping. It is copied; later mutation of the
                caller's dict does not affect this vocabulary.
        """
        forward = {str(token): int(token_id) for token, token_id in token_to_id.items()}
        self._token_to_id: Mapping[str, int] = MappingProxyType(forward)
        self._id_to_token: Mapping[int, str] = MappingProxyType(
            {token_id: token for token, token_id in forward.items()}
        )
        self._max_token_length = max((len(token) for token in forward), default=0)

    @classmethod
    def load(cls, source_mapping: Mapping[str, int] | None) -> "Vocabulary":
        """
        Validate and wrap a source mapping.

        Raises:
            VocabError: ``MISSING`` when no mapping is given, ``EMPTY`` when
                the mapping has no entries.
        """
        if source_mapping is None:
            raise VocabError(VocabErrorKind.MISSING)
        if len(source_mapping) == 0:
            raise VocabError(VocabErrorKind.EMPTY)
        return cls(source_mapping)

    def id_of(self, token: str) -> int | None:
        return self._token_to_id.get(token)

    def token_of(self, token_id: int) -> str | None:
        return self._id_to_token.get(token_id)

    @property
    def token_to_id(self) -> Mapping[str, int]:
        return self._token_to_id

    @property
    def id_to_token(self) -> Mapping[int, str]:
        return self._id_to_token

    @property
    def size(self) -> int:
        """Number of ids, i.e. the expected logit vector length."""
        return max(self._id_to_token, default=-1) + 1

    @property
    def max_token_length(self) -> int:
        return self._max_token_length

    def __len__(self) -> int:
        return len(self._token_to_id)

    def __contains__(self, token: object) -> bool:
        return token in self._token_to_id

    def __iter__(self) -> Iterator[str]:
        return iter(self._token_to_id)


class SpecialTokens(BaseModel):
    """Reserved ids for one vocabulary."""

    model_config = ConfigDict(frozen=True)

    unk_id: int = 0
    bos_id: int = 1
    eos_id: int = 2
    line_break_id: int | None = None


def detect_special_tokens(vocab: Vocabulary, defaults: SpecialTokens | None = None) -> SpecialTokens:
    """Fill reserved ids from the conventional SentencePiece strings when present."""
    base = defaults or SpecialTokens()
    found: dict[str, Any] = {}
    for field, token in (
        ("unk_id", UNK_TOKEN),
        ("bos_id", BOS_TOKEN),
        ("eos_id", EOS_TOKEN),
        ("line_break_id", LINE_BREAK_TOKEN),
    ):
        token_id = vocab.id_of(token)
        if token_id is not None:
            found[field] = token_id
    return base.model_copy(update=found)


def load_vocabulary(model_path: str | Path) -> Vocabulary:
    """
    Load the vocabulary from ``tokenizer.json`` in a model directory.

    ``model.vocab`` supplies the base mapping; ids listed under
    ``added_tokens`` are merged on top, as HF tokenizers do.

    Args:
        model_path: Model directory, or a direct path to a tokenizer.json.

    Returns:
        Vocabulary instance

    Raises:
        VocabError: ``MISSING`` if the file, its JSON, or ``model.vocab`` is
            absent; ``EMPTY`` if the vocab has no entries.
    """
    model_path = Path(model_path)
    tokenizer_json_path = model_path if model_path.is_file() else model_path / "tokenizer.json"
    if not tokenizer_json_path.exists():
        raise VocabError(
            VocabErrorKind.MISSING, f"tokenizer.json not found at {tokenizer_json_path}"
        )

    try:
        with open(tokenizer_json_path, "r", encoding="utf-8") as f:
            tokenizer_data = json.load(f)
    except json.JSONDecodeError as e:
        raise VocabError(
            VocabErrorKind.MISSING, f"Failed to parse {tokenizer_json_path}: {e}"
        ) from e

    model_config = tokenizer_data.get("model") if isinstance(tokenizer_data, dict) else None
    vocab = model_config.get("vocab") if isinstance(model_config, dict) else None
    if vocab is None:
        raise VocabError(
            VocabErrorKind.MISSING, f"No vocab found in {tokenizer_json_path}"
        )
    if isinstance(vocab, list):
        # Unigram exports store [piece, score] pairs in id order.
        vocab = {entry[0]: idx for idx, entry in enumerate(vocab)}
    vocab = dict(vocab)
    if not vocab:
        raise VocabError(VocabErrorKind.EMPTY, f"Vocabulary in {tokenizer_json_path} is empty")

    for token_info in tokenizer_data.get("added_tokens", []) or []:
        if isinstance(token_info, dict):
            content = token_info.get("content")
            token_id = token_info.get("id")
            if content is not None and token_id is not None:
                vocab[content] = token_id

    vocabulary = Vocabulary.load(vocab)
    logger.info("Loaded vocabulary with %d tokens from %s", len(vocabulary), tokenizer_json_path)
    return vocabulary
