from __future__ import annotations

from typing import Protocol, Sequence

from sliding_llama.runtime.detokenizer import StreamingDetokenizer


class TokenizerProtocol(Protocol):
    """Protocol for tokenizer implementations used by the generation loop."""

    bos_token_id: int
    eos_token_id: int
    unk_token_id: int

    def encode(self, text: str) -> list[int]:
        """Encode text into token IDs, BOS first."""
        ...

    def encode_chat(self, text: str) -> list[int]:
        """Wrap user text in the chat template, then encode it."""
        ...

    def decode(self, token_ids: Sequence[int]) -> str:
        """Decode token IDs into text."""
        ...

    def decode_token(self, token_id: int) -> str:
        """Decode a single token ID into text."""
        ...

    def make_detokenizer(self) -> StreamingDetokenizer:
        """Return a fresh incremental detokenizer for one request."""
        ...
