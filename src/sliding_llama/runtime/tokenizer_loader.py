"""
Tokenizer loader for SentencePiece-style model directories.
"""

from __future__ import annotations

from pathlib import Path

from sliding_llama.config import EngineConfig
from sliding_llama.logging import get_logger
from sliding_llama.runtime.tokenizer_spm import GreedySentencePieceTokenizer
from sliding_llama.runtime.vocabulary import (
    SpecialTokens,
    Vocabulary,
    detect_special_tokens,
    load_vocabulary,
)

logger = get_logger(__name__)


def special_tokens_from_config(config: EngineConfig) -> SpecialTokens:
    return SpecialTokens(
        unk_id=config.unk_id,
        bos_id=config.bos_id,
        eos_id=config.eos_id,
        line_break_id=config.line_break_id,
    )


def build_tokenizer(vocab: Vocabulary, config: EngineConfig) -> GreedySentencePieceTokenizer:
    """Create a tokenizer over an already-loaded (possibly shared) vocabulary."""
    return GreedySentencePieceTokenizer(
        vocab,
        special_tokens=special_tokens_from_config(config),
        max_token_length=config.max_token_length,
        chat_template=config.chat_template,
    )


def load_tokenizer(
    model_path: str | Path,
    config: EngineConfig | None = None,
) -> GreedySentencePieceTokenizer:
    """
    Load a greedy SentencePiece tokenizer from a model directory.

    Reserved ids come from the config rather than being guessed from the
    vocabulary; they are model-specific.

    Args:
        model_path: Path to model directory containing tokenizer.json

    Returns:
        GreedySentencePieceTokenizer instance

    Raises:
        VocabError: If tokenizer.json or its vocab is missing or empty
    """
    config = config or EngineConfig()
    vocab = load_vocabulary(model_path)
    configured = special_tokens_from_config(config)
    detected = detect_special_tokens(vocab, configured)
    reserved = {"unk_id", "bos_id", "eos_id"}
    if detected.model_dump(include=reserved) != configured.model_dump(include=reserved):
        logger.warning(
            "Configured special token ids %s differ from the vocabulary's own %s",
            configured.model_dump(include=reserved),
            detected.model_dump(include=reserved),
        )
    return build_tokenizer(vocab, config)
