"""
Tests for the greedy generation loop.
"""
import logging
import threading

import numpy as np
import pytest

from sliding_llama.config import EngineConfig
from sliding_llama.errors import ScorerError, ScorerTimeoutError, SessionBusyError
from sliding_llama.generation.loop import GenerationLoop, LoopState
from sliding_llama.generation.stop_policy import StopReason
from sliding_llama.runtime.context import ContextWindow
from sliding_llama.runtime.scorer import BoundedScorer, ScriptedScorer
from sliding_llama.runtime.tokenizer_spm import GreedySentencePieceTokenizer
from sliding_llama.runtime.vocabulary import Vocabulary

CAPACITY = 16


def make_loop(tokenizer, config, token_ids, capacity=CAPACITY, **kwargs):
    scorer = ScriptedScorer(token_ids, vocab_size=tokenizer.vocab_size, capacity=capacity, **kwargs)
    loop = GenerationLoop(
        tokenizer,
        ContextWindow(structural_keep=config.structural_keep),
        scorer,
        capacity,
        config=config,
    )
    return loop, scorer


class _ExplodingScorer:
    """Scores normally for ``ok_calls`` calls, then raises."""

    def __init__(self, inner: ScriptedScorer, ok_calls: int) -> None:
        self.inner = inner
        self.ok_calls = ok_calls
        self.calls = 0

    def score(self, input_ids, attention_mask):
        self.calls += 1
        if self.calls > self.ok_calls:
            raise RuntimeError("inference failed")
        return self.inner.score(input_ids, attention_mask)


def test_eos_on_first_step_yields_empty_text():
    vocab = Vocabulary.load({"▁Hi": 5, "<s>": 1, "</s>": 2, "<unk>": 0})
    tokenizer = GreedySentencePieceTokenizer(vocab)
    config = EngineConfig(chat_template=None)
    loop, scorer = make_loop(tokenizer, config, [2])

    result = loop.run("Hi")

    assert result.stop_reason is StopReason.EOS
    assert result.text == ""
    assert result.tokens == []
    assert loop.context.history == (1, 5)
    assert scorer.calls[0][0][:2].tolist() == [1, 5]


def test_generates_until_eos(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 7])
    seen = []

    result = loop.run("Hello", on_text=seen.append)

    assert result.text == " Hi there"
    assert seen == [" Hi", " there"]
    assert result.tokens == [5, 7]
    assert result.stop_reason is StopReason.EOS
    assert result.prompt_tokens == 2
    assert result.history_length == 4
    assert loop.state is LoopState.STOPPED
    # EOS is not appended to the history.
    assert loop.context.history == (1, 14, 5, 7)


def test_budget_exhausted(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5] * 20)
    result = loop.run("Hi", max_new_tokens=3)
    assert result.stop_reason is StopReason.TOKEN_BUDGET_EXHAUSTED
    assert result.tokens == [5, 5, 5]
    assert result.steps == 3


def test_default_budget_comes_from_config(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5] * 50, capacity=64)
    result = loop.run("Hi")
    assert len(result.tokens) == config.max_new_tokens


def test_unk_stops_generation(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 0, 7])
    result = loop.run("Hi")
    assert result.stop_reason is StopReason.UNK
    assert result.text == " Hi"


def test_punctuation_stop_appends_token(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 7, 17, 9, 5])
    result = loop.run("Hi")
    assert result.stop_reason is StopReason.PUNCTUATION
    assert result.text == " Hi there world."
    assert loop.context.history[-1] == 9


def test_early_punctuation_does_not_stop(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [9, 5, 7])
    result = loop.run("Hi")
    assert result.stop_reason is StopReason.EOS
    assert result.text == ". Hi there"


def test_window_is_padded_and_masked(tokenizer, config):
    loop, scorer = make_loop(tokenizer, config, [5, 7])
    loop.run("Hi there")
    for step, (input_ids, mask) in enumerate(scorer.calls):
        real = 3 + step
        assert input_ids.shape == (CAPACITY,)
        assert mask[:real].tolist() == [1] * real
        assert mask[real:].tolist() == [0] * (CAPACITY - real)
        assert np.all(input_ids[real:] == config.effective_pad_id)
    assert scorer.calls[2][0][:5].tolist() == [1, 5, 7, 5, 7]


def test_long_history_slides(tokenizer, config):
    loop, scorer = make_loop(tokenizer, config, [5] * 30, capacity=CAPACITY)
    result = loop.run("Hi", max_new_tokens=30)

    assert result.stop_reason is StopReason.TOKEN_BUDGET_EXHAUSTED
    assert len(loop.context) == 32
    limit = CAPACITY - config.generation_headroom
    last_ids, last_mask = scorer.calls[-1]
    assert int(last_mask.sum()) == limit
    # BOS and the first prompt token survive as the structural prefix.
    assert last_ids[:2].tolist() == [1, 5]


def test_sequence_limit_without_sliding(tokenizer, config):
    fixed = config.model_copy(update={"sliding_window": False})
    loop, _ = make_loop(tokenizer, fixed, [5] * 30, capacity=8)
    result = loop.run("Hi", max_new_tokens=30)
    assert result.stop_reason is StopReason.SEQUENCE_LIMIT
    assert len(loop.context) == 7


def test_scorer_error_keeps_partial_output(tokenizer, config):
    inner = ScriptedScorer([5, 7, 17], vocab_size=tokenizer.vocab_size, capacity=CAPACITY)
    scorer = _ExplodingScorer(inner, ok_calls=2)
    loop = GenerationLoop(tokenizer, ContextWindow(2), scorer, CAPACITY, config=config)

    result = loop.run("Hi")

    assert result.stop_reason is StopReason.SCORER_ERROR
    assert result.failed
    assert isinstance(result.error, ScorerError)
    assert result.text == " Hi there"
    assert loop.state is LoopState.FAILED

    scorer.ok_calls = 100
    follow_up = loop.run("Hi")
    assert not follow_up.failed
    assert follow_up.stop_reason is StopReason.EOS


def test_scorer_with_too_few_positions_is_an_error(tokenizer, config):
    class _Short:
        def score(self, input_ids, attention_mask):
            return np.zeros((1, tokenizer.vocab_size))

    loop = GenerationLoop(tokenizer, ContextWindow(2), _Short(), CAPACITY, config=config)
    result = loop.run("Hi there")
    assert result.stop_reason is StopReason.SCORER_ERROR


def test_continue_resumes_without_new_prompt(tokenizer, config):
    loop, scorer = make_loop(tokenizer, config, [5, 7], cycle=True)
    loop.run("Hi")
    history_before = loop.context.history

    result = loop.run("continue")

    assert result.prompt_tokens == 0
    assert result.text == " Hi there"
    assert loop.context.history[: len(history_before)] == history_before
    assert len(loop.context) == len(history_before) + 2


def test_continuation_markers(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [])
    assert loop.is_continuation("continue")
    assert loop.is_continuation("  more ")
    assert loop.is_continuation("continue please")
    assert not loop.is_continuation("tell me more")


def test_continue_on_empty_history_is_ordinary_input(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [])
    result = loop.run("more")
    assert result.prompt_tokens > 0


def test_busy_loop_rejects_second_request(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 7])
    stream = loop.stream("Hi")
    next(stream)
    with pytest.raises(SessionBusyError):
        next(loop.stream("Hi"))
    stream.close()
    assert loop.state is LoopState.STOPPED


def test_stream_ends_with_finish_chunk(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5])
    chunks = list(loop.stream("Hi"))
    assert [c.token for c in chunks] == [5, None]
    assert chunks[-1].finish_reason is StopReason.EOS
    assert chunks[-1].text == ""


def test_capacity_must_exceed_headroom(tokenizer, config):
    with pytest.raises(ValueError):
        make_loop(tokenizer, config, [], capacity=config.generation_headroom)


def test_long_history_warning_logged_once(tokenizer, config, caplog):
    chatty = config.model_copy(update={"history_warning_tokens": 3})
    loop, _ = make_loop(tokenizer, chatty, [5] * 5)
    with caplog.at_level(logging.WARNING, logger="sliding_llama"):
        loop.run("Hi")
    warnings = [r for r in caplog.records if "consider a reset" in r.getMessage()]
    assert len(warnings) == 1


def test_reset_clears_history(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5])
    loop.run("Hi")
    loop.reset()
    assert len(loop.context) == 0
    assert loop.state is LoopState.IDLE


class _StallingScorer:
    """Scores normally for ``ok_calls`` calls, then blocks until released."""

    def __init__(self, inner: ScriptedScorer, ok_calls: int) -> None:
        self.inner = inner
        self.ok_calls = ok_calls
        self.calls = 0
        self.release = threading.Event()

    def score(self, input_ids, attention_mask):
        self.calls += 1
        if self.calls > self.ok_calls:
            self.release.wait(timeout=5)
        return self.inner.score(input_ids, attention_mask)


def test_pending_byte_token_is_flushed_on_eos(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 15])
    result = loop.run("Hi")
    assert result.stop_reason is StopReason.EOS
    assert result.tokens == [5, 15]
    assert result.text == " Hi\ufffd"


def test_pending_byte_token_is_flushed_on_budget(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 15, 16])
    seen = []
    result = loop.run("Hi", on_text=seen.append, max_new_tokens=2)
    assert result.stop_reason is StopReason.TOKEN_BUDGET_EXHAUSTED
    assert result.text == " Hi\ufffd"
    assert "".join(seen) == result.text


def test_pending_byte_token_rides_on_final_chunk(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [15])
    chunks = list(loop.stream("Hi"))
    assert [c.text for c in chunks] == ["", "\ufffd"]
    assert chunks[-1].finish_reason is StopReason.EOS


def test_split_character_is_reassembled(tokenizer, config):
    loop, _ = make_loop(tokenizer, config, [5, 15, 16])
    assert loop.run("Hi").text == " Hié"


def test_scorer_timeout_keeps_partial_output(tokenizer, config):
    inner = ScriptedScorer([5], vocab_size=tokenizer.vocab_size, capacity=CAPACITY)
    stalling = _StallingScorer(inner, ok_calls=1)
    scorer = BoundedScorer(stalling, timeout=0.05)
    loop = GenerationLoop(tokenizer, ContextWindow(2), scorer, CAPACITY, config=config)
    try:
        result = loop.run("Hi")

        assert result.stop_reason is StopReason.SCORER_ERROR
        assert isinstance(result.error, ScorerTimeoutError)
        assert result.text == " Hi"
        assert result.tokens == [5]
        assert loop.state is LoopState.FAILED

        stalling.release.set()
        follow_up = loop.run("Hi")
        assert follow_up.stop_reason is StopReason.EOS
        assert not follow_up.failed
    finally:
        stalling.release.set()
        scorer.close()
