"""Offline demo wiring: a tiny vocabulary and a scorer that replays a canned answer."""

from __future__ import annotations

from sliding_llama.runtime.detokenizer import SPIECE_MARKER
from sliding_llama.runtime.provider import ScriptedModelProvider
from sliding_llama.runtime.tokenizer_spm import GreedySentencePieceTokenizer
from sliding_llama.runtime.vocabulary import Vocabulary

DEMO_CAPACITY = 64
DEMO_REPLY = (
    "Hello there! I am a scripted scorer. Every answer is the same, "
    "but the window and stop policy are real."
)


def demo_vocabulary() -> Vocabulary:
    tokens = ["<unk>", "<s>", "</s>", "<0x0A>", "[", "]", "/", "INST", SPIECE_MARKER]
    for word in (DEMO_REPLY + " [INST] [/INST]").split(" "):
        piece = SPIECE_MARKER + word
        if piece not in tokens:
            tokens.append(piece)
    for char in sorted(set(DEMO_REPLY.replace(" ", ""))):
        if char not in tokens:
            tokens.append(char)
    return Vocabulary.load({token: idx for idx, token in enumerate(tokens)})


def demo_provider(tokenizer: GreedySentencePieceTokenizer) -> ScriptedModelProvider:
    reply_ids = tokenizer.encode(DEMO_REPLY)[1:]
    return ScriptedModelProvider(
        reply_ids,
        vocab_size=tokenizer.vocab_size,
        capacity=DEMO_CAPACITY,
        fallback_id=tokenizer.eos_token_id,
        cycle=True,
    )
