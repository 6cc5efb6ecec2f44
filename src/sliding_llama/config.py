from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from sliding_llama.errors import ConfigError
from sliding_llama.logging import get_logger

logger = get_logger(__name__)

CONFIG_ENV_VAR = "SLIDING_LLAMA_CONFIG"
CONFIG_DIR_ENV_VAR = "SLIDING_LLAMA_CONFIG_DIR"
DEFAULT_CONFIG_DIR = "configs"
DEFAULT_CHAT_TEMPLATE = "[INST] {text} [/INST]"


class EngineConfig(BaseModel):
    """
    Tokenizer, windowing, and stopping parameters for one generation engine.

    Special token ids are model/vocabulary-specific; the defaults follow the
    LLaMA SentencePiece convention (``<unk>=0``, ``<s>=1``, ``</s>=2``).
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    # Sliding window
    structural_keep: int = Field(
        default=8,
        ge=0,
        description="Oldest history tokens always kept verbatim in the window",
    )
    generation_headroom: int = Field(
        default=10,
        ge=2,
        description="Positions reserved below capacity for new tokens and padding",
    )
    max_sequence_length: Optional[int] = Field(
        default=None,
        ge=2,
        description="Override for the scorer capacity reported by the model provider",
    )
    sliding_window: bool = Field(
        default=True,
        description="Window long histories; when false, a full context ends the request",
    )
    history_warning_tokens: int = Field(
        default=2000,
        ge=1,
        description="Warn once the conversation history grows past this many tokens",
    )

    # Generation
    max_new_tokens: int = Field(
        default=100,
        ge=1,
        description="Maximum tokens generated per request",
    )
    min_steps_before_stop: int = Field(
        default=20,
        ge=0,
        description="Steps before punctuation may end a fresh request",
    )
    min_steps_before_stop_continue: int = Field(
        default=30,
        ge=0,
        description="Steps before punctuation may end a 'continue' request",
    )
    stop_punctuation: Tuple[str, ...] = (".", "!", "?")
    code_markers: Tuple[str, ...] = ("```", "let ", "type ", "match ", "def ")
    stop_lookback_chars: int = Field(default=50, ge=0)
    stop_on_line_break: bool = False
    continue_markers: Tuple[str, ...] = ("continue", "more")
    chat_template: Optional[str] = DEFAULT_CHAT_TEMPLATE

    # Tokenizer
    max_token_length: int = Field(
        default=20,
        ge=1,
        description="Longest substring tried during greedy longest-match",
    )
    unk_id: int = Field(default=0, ge=0)
    bos_id: int = Field(default=1, ge=0)
    eos_id: int = Field(default=2, ge=0)
    line_break_id: Optional[int] = Field(default=None, ge=0)
    pad_id: Optional[int] = Field(
        default=None,
        ge=0,
        description="Id written into padded scorer positions (default: bos_id)",
    )

    # Bounded waits (seconds)
    scorer_timeout: float = Field(default=120.0, gt=0.0)
    load_timeout: float = Field(default=180.0, gt=0.0)

    @model_validator(mode="after")
    def _check_template(self) -> "EngineConfig":
        if self.chat_template is not None and "{text}" not in self.chat_template:
            raise ValueError("chat_template must contain a '{text}' placeholder")
        return self

    @property
    def effective_pad_id(self) -> int:
        return self.bos_id if self.pad_id is None else self.pad_id

    def min_steps_for(self, is_continuation: bool) -> int:
        return self.min_steps_before_stop_continue if is_continuation else self.min_steps_before_stop


def resolve_config_path(path: str | Path | None, config_dir: str | Path | None = None) -> Path | None:
    if path is None:
        env_path = os.getenv(CONFIG_ENV_VAR)
        if not env_path:
            return None
        path = env_path
    candidate = Path(os.path.expandvars(str(path))).expanduser()
    if candidate.is_absolute() or candidate.exists():
        return candidate
    base_dir = Path(config_dir or os.getenv(CONFIG_DIR_ENV_VAR, DEFAULT_CONFIG_DIR))
    fallback = base_dir / candidate
    if fallback.exists():
        return fallback
    return candidate


def load_engine_config(
    path: str | Path | None = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> EngineConfig:
    """
    Load an EngineConfig from a JSON file, then apply keyword overrides.

    Example file:
    {
      "structural_keep": 8,
      "generation_headroom": 10,
      "max_new_tokens": 100,
      "min_steps_before_stop": 20,
      "min_steps_before_stop_continue": 30,
      "eos_id": 2,
      "line_break_id": 13,
      "stop_on_line_break": false,
      "chat_template": "[INST] {text} [/INST]"
    }

    When ``path`` is None the ``SLIDING_LLAMA_CONFIG`` environment variable is
    consulted; with neither set the defaults are used. Overrides whose value
    is None are ignored so argparse namespaces can be passed through directly.

    Raises:
        ConfigError: If the file is named but missing, is not valid JSON, or
            fails validation.
    """
    data: Dict[str, Any] = {}
    resolved = resolve_config_path(path)
    if resolved is not None:
        if not resolved.exists():
            raise ConfigError(f"Config file not found: {resolved}")
        try:
            loaded = json.loads(resolved.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {resolved}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {resolved} must contain a JSON object")
        data.update(loaded)
        logger.debug("Loaded engine config from %s", resolved)

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return EngineConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid engine config: {e}") from e
