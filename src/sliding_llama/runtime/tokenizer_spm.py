"""
Greedy longest-match tokenizer for SentencePiece-style vocabularies.
"""

from __future__ import annotations

from collections.abc import Sequence

from sliding_llama.runtime.detokenizer import (
    SPIECE_MARKER,
    StreamingDetokenizer,
    decode_piece,
)
from sliding_llama.runtime.vocabulary import SpecialTokens, Vocabulary

DEFAULT_MAX_TOKEN_LENGTH = 20


class GreedySentencePieceTokenizer:
    """Pure Python greedy longest-match tokenizer over a SentencePiece vocabulary."""

    def __init__(
        self,
        vocab: Vocabulary,
        special_tokens: SpecialTokens | None = None,
        max_token_length: int = DEFAULT_MAX_TOKEN_LENGTH,
        chat_template: str | None = None,
    ):
        """
        Initialize the tokenizer.

        Args:
            vocab: Shared, read-only vocabulary
            special_tokens: Reserved ids (UNK/BOS/EOS/line break)
            max_token_length: Longest candidate substring tried at each position
            chat_template: Optional template with a ``{text}`` placeholder used
                by encode_chat
        """
        if max_token_length < 1:
            raise ValueError("max_token_length must be at least 1")
        self.vocab = vocab
        self.special_tokens = special_tokens or SpecialTokens()
        self.max_token_length = max_token_length
        self.chat_template = chat_template

    @property
    def unk_token_id(self) -> int:
        return self.special_tokens.unk_id

    @property
    def bos_token_id(self) -> int:
        return self.special_tokens.bos_id

    @property
    def eos_token_id(self) -> int:
        return self.special_tokens.eos_id

    @property
    def line_break_token_id(self) -> int | None:
        return self.special_tokens.line_break_id

    @property
    def vocab_size(self) -> int:
        return self.vocab.size

    @staticmethod
    def to_sentencepiece(text: str) -> str:
        """Mark word starts the SentencePiece way: leading marker, spaces replaced."""
        return SPIECE_MARKER + text.replace(" ", SPIECE_MARKER)

    def encode(self, text: str) -> list[int]:
        """
        Encode text to token IDs. Never raises; the result always starts with BOS.

        At each position the longest vocabulary entry wins. When nothing
        matches, UNK is emitted and the scan advances by one character (one
        Unicode scalar, i.e. one ``str`` index).
        """
        token_ids = [self.bos_token_id]
        sp_text = self.to_sentencepiece(text)
        text_len = len(sp_text)
        pos = 0
        while pos < text_len:
            for length in range(min(self.max_token_length, text_len - pos), 0, -1):
                token_id = self.vocab.id_of(sp_text[pos:pos + length])
                if token_id is not None:
                    token_ids.append(token_id)
                    pos += length
                    break
            else:
                token_ids.append(self.unk_token_id)
                pos += 1
        return token_ids

    def apply_chat_template(self, text: str) -> str:
        if not self.chat_template:
            return text
        return self.chat_template.replace("{text}", text)

    def encode_chat(self, text: str) -> list[int]:
        return self.encode(self.apply_chat_template(text))

    def decode_token(self, token_id: int) -> str:
        return decode_piece(self.vocab, token_id)

    def decode(
        self,
        token_ids: Sequence[int] | int,
        skip_special_tokens: bool = True,
    ) -> str:
        """
        Decode token IDs to text.

        The marker prepended by encode() is dropped, so decoding the ids
        after BOS gives back the original text when every piece is known.
        A leading space that comes from a byte token such as ``<0x20>`` is
        kept.
        """
        if isinstance(token_ids, int):
            token_ids = [token_ids]

        skipped = (self.bos_token_id, self.eos_token_id) if skip_special_tokens else ()
        detokenizer = self.make_detokenizer()
        for token_id in token_ids:
            if token_id in skipped:
                continue
            detokenizer.add_token(int(token_id))
        detokenizer.finalize()

        text = detokenizer.text
        first = self.vocab.token_of(detokenizer.tokens[0]) if detokenizer.tokens else None
        if first is not None and first.startswith(SPIECE_MARKER) and text.startswith(" "):
            text = text[1:]
        return text

    def make_detokenizer(self) -> StreamingDetokenizer:
        return StreamingDetokenizer(self.vocab)
