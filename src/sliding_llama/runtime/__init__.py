"""Vocabulary, tokenizer, context window, and scorer seam."""
