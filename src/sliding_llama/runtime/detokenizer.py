"""
Detokenization for SentencePiece-style vocabularies, single-piece and streaming.
"""

from __future__ import annotations

import codecs
import re

from sliding_llama.runtime.vocabulary import Vocabulary

SPIECE_MARKER = "\u2581"

_BYTE_TOKEN = re.compile(r"^<0x([0-9A-Fa-f]{2})>$")


def byte_value(token: str) -> int | None:
    """Return the raw byte a ``<0xHH>`` escape token stands for, if it is one."""
    match = _BYTE_TOKEN.match(token)
    if match is None:
        return None
    return int(match.group(1), 16)


def unknown_placeholder(token_id: int) -> str:
    return f"[UNK_{token_id}]"


def decode_piece(vocab: Vocabulary, token_id: int) -> str:
    """
    Decode one token id to displayable text. Never raises.

    Byte-escape tokens are resolved before marker substitution since they
    stand for raw bytes: ``<0x0A>`` becomes LF, ``<0x0D>`` CR, and any other
    ASCII byte its character. A lone non-ASCII byte cannot be shown on its
    own and decodes to U+FFFD; StreamingDetokenizer reassembles those.
    """
    token = vocab.token_of(token_id)
    if token is None:
        return unknown_placeholder(token_id)
    value = byte_value(token)
    if value is not None:
        if value < 0x80:
            return chr(value)
        return "\ufffd"
    return token.replace(SPIECE_MARKER, " ")


class StreamingDetokenizer:
    """Incremental detokenizer that yields text one accepted token at a time.

    High byte tokens feed an incremental UTF-8 decoder: a character split
    across several ``<0xHH>`` tokens comes out once complete, and a byte that
    cannot continue or start a sequence comes out as U+FFFD right away.
    """

    def __init__(self, vocab: Vocabulary):
        """Initialize streaming detokenizer."""
        self.vocab = vocab
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.reset()

    def reset(self) -> None:
        """Reset the detokenizer state."""
        self.tokens: list[int] = []
        self._decoder.reset()
        self.text: str = ""
        self.last_segment: str = ""

    def add_token(self, token_id: int) -> str:
        """Add a token to the stream and return the newly decodable text."""
        self.tokens.append(token_id)
        token = self.vocab.token_of(token_id)
        value = byte_value(token) if token is not None else None

        if value is not None and value >= 0x80:
            segment = self._decoder.decode(bytes([value]))
        else:
            segment = self._flush() + decode_piece(self.vocab, token_id)

        self.text += segment
        self.last_segment = segment
        return segment

    def _flush(self) -> str:
        pending = self._decoder.decode(b"", final=True)
        self._decoder.reset()
        return pending

    def finalize(self) -> str:
        """Finalize decoding (handle remaining bytes)."""
        segment = self._flush()
        self.text += segment
        self.last_segment = segment
        return segment
