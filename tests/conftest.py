"""
Pytest configuration and shared fixtures for sliding-llama tests.
"""
import json
from pathlib import Path

import pytest

from sliding_llama.chat.session import ChatSession
from sliding_llama.config import EngineConfig
from sliding_llama.runtime.scorer import ScriptedScorer
from sliding_llama.runtime.tokenizer_loader import build_tokenizer
from sliding_llama.runtime.vocabulary import Vocabulary

SP = "▁"

TEST_CAPACITY = 32


@pytest.fixture(scope="session")
def sample_vocab_mapping() -> dict:
    """Returns a small LLaMA-style token -> id mapping."""
    return {
        "<unk>": 0,
        "<s>": 1,
        "</s>": 2,
        "<0x0A>": 3,
        SP: 4,
        f"{SP}Hi": 5,
        f"{SP}the": 6,
        f"{SP}there": 7,
        "!": 8,
        ".": 9,
        "[": 10,
        "]": 11,
        "/": 12,
        "INST": 13,
        f"{SP}Hello": 14,
        "<0xC3>": 15,
        "<0xA9>": 16,
        f"{SP}world": 17,
        f"{SP}def": 18,
        "<0x0D>": 19,
        f"{SP}[": 20,
    }


@pytest.fixture(scope="session")
def vocab(sample_vocab_mapping: dict) -> Vocabulary:
    return Vocabulary.load(sample_vocab_mapping)


@pytest.fixture
def config() -> EngineConfig:
    """Engine config with small thresholds and no chat template."""
    return EngineConfig(
        chat_template=None,
        structural_keep=2,
        generation_headroom=4,
        min_steps_before_stop=2,
        min_steps_before_stop_continue=3,
        max_new_tokens=10,
        line_break_id=3,
    )


@pytest.fixture
def tokenizer(vocab: Vocabulary, config: EngineConfig):
    return build_tokenizer(vocab, config)


@pytest.fixture
def make_session(tokenizer, vocab: Vocabulary, config: EngineConfig):
    """Factory building a ChatSession around a ScriptedScorer."""

    def _make(token_ids, capacity: int = TEST_CAPACITY, **kwargs) -> ChatSession:
        scorer = ScriptedScorer(token_ids, vocab_size=vocab.size, capacity=capacity, **kwargs)
        return ChatSession(tokenizer, scorer, capacity, config=config)

    return _make


@pytest.fixture
def model_dir(tmp_path: Path, sample_vocab_mapping: dict) -> Path:
    """Returns a model directory holding a tokenizer.json."""
    payload = {
        "model": {"type": "BPE", "vocab": sample_vocab_mapping},
        "added_tokens": [{"id": 21, "content": "<pad>", "special": True}],
    }
    (tmp_path / "tokenizer.json").write_text(json.dumps(payload), encoding="utf-8")
    return tmp_path
