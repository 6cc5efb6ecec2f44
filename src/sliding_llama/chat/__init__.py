from __future__ import annotations

from sliding_llama.chat.session import ChatSession, SessionStatus, build_session

__all__ = ["ChatSession", "SessionStatus", "build_session"]
