#!/usr/bin/env python3
"""
Basic chat example using sliding-llama.

This example builds a session over the built-in demo vocabulary and scripted
scorer, so it runs without any model files. Swap ``demo_provider`` for a
``FactoryModelProvider`` to drive a real scorer.
"""

from sliding_llama import EngineConfig, StopReason, build_session
from sliding_llama.cli.demo import demo_provider, demo_vocabulary
from sliding_llama.runtime.tokenizer_loader import build_tokenizer


def main():
    config = EngineConfig(max_new_tokens=60)
    vocab = demo_vocabulary()
    provider = demo_provider(build_tokenizer(vocab, config))
    session = build_session(provider, config, vocab=vocab)

    print("\nStarting chat. Type 'quit' or 'exit' to end.\n")

    try:
        while True:
            user_input = input("You: ").strip()
            if not user_input:
                continue

            if user_input.lower() in ["quit", "exit"]:
                print("\nGoodbye!")
                break

            print("Assistant:", end="", flush=True)
            result = session.submit(
                user_input,
                on_text=lambda text: print(text, end="", flush=True),
            )
            print()

            if result.stop_reason is StopReason.SCORER_ERROR:
                print(f"(inference failed: {result.error})")
            status = session.status()
            print(f"[{status.history_length} tokens in history, stop: {result.stop_reason.value}]")
    finally:
        session.close()


if __name__ == "__main__":
    main()
