"""
Tests for ChatSession and build_session.
"""
import threading

import pytest

from sliding_llama.chat.session import build_session, resolve_capacity
from sliding_llama.config import EngineConfig
from sliding_llama.errors import ScorerTimeoutError, SessionBusyError
from sliding_llama.generation.stop_policy import StopReason
from sliding_llama.runtime.provider import ScriptedModelProvider
from sliding_llama.runtime.scorer import BoundedScorer


def test_reset_then_status_reports_empty_history(make_session):
    session = make_session([5, 7])
    session.submit("Hi")
    assert session.status().history_length > 0

    session.reset()

    status = session.status()
    assert status.history_length == 0
    assert status.state == "idle"
    assert not status.sliding_window_active


def test_status_reports_sliding_window(make_session):
    session = make_session([5] * 40, capacity=16)
    session.submit("Hi", max_new_tokens=20)
    status = session.status()
    assert status.capacity == 16
    assert status.sliding_window_active


def test_concurrent_submit_is_rejected(make_session):
    session = make_session([5, 7])
    stream = session.stream("Hi")
    next(stream)
    assert session.busy
    with pytest.raises(SessionBusyError):
        session.submit("Hi")
    with pytest.raises(SessionBusyError):
        session.reset()
    stream.close()

    assert not session.busy
    assert session.submit("Hi").stop_reason is not None


def test_sessions_share_vocabulary_but_not_history(make_session):
    first = make_session([5])
    second = make_session([7])
    first.submit("Hi")
    assert first.vocabulary is second.vocabulary
    assert len(second.context) == 0


def test_build_session_with_shared_vocab(vocab, config):
    provider = ScriptedModelProvider([5, 7], vocab_size=vocab.size, capacity=24)
    session = build_session(provider, config, vocab=vocab)
    try:
        assert session.capacity == 24
        assert isinstance(session.loop.scorer, BoundedScorer)
        result = session.submit("Hi")
        assert result.text == " Hi there"
        assert result.stop_reason is StopReason.EOS
    finally:
        session.close()


def test_build_session_from_model_dir(model_dir, config):
    provider = ScriptedModelProvider([5], vocab_size=22, capacity=24)
    session = build_session(provider, config, model_path=model_dir)
    try:
        assert session.vocabulary.id_of("<pad>") == 21
    finally:
        session.close()


def test_build_session_needs_a_vocabulary_source(config):
    provider = ScriptedModelProvider([], vocab_size=3)
    with pytest.raises(ValueError):
        build_session(provider, config)


def test_build_session_load_timeout(vocab, config):
    class _Hanging(ScriptedModelProvider):
        def load(self):
            threading.Event().wait(timeout=1)
            return super().load()

    fast = config.model_copy(update={"load_timeout": 0.05})
    with pytest.raises(ScorerTimeoutError):
        build_session(_Hanging([], vocab_size=vocab.size), fast, vocab=vocab)


def test_configured_capacity_overrides_provider():
    provider = ScriptedModelProvider([], vocab_size=3, capacity=64)
    assert resolve_capacity(provider, EngineConfig()) == 64
    assert resolve_capacity(provider, EngineConfig(max_sequence_length=40)) == 40
