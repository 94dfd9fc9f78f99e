from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

DEFAULT_EXCLUDED_TAGS = ("pre", "code", "math", "ruby", "rt", "style", "script")


@dataclass(slots=True)
class AlignmentSettings:
    """Heuristic limits shared by the word and phrase aligners."""

    window_size: int = 10
    max_consecutive_failures: int = 3
    max_merge_tokens: int = 4
    phrase_min_coverage: float = 0.7
    phrase_min_matched_words: int = 2
    phrase_max_skipped: int = 3


@dataclass(slots=True)
class PipelineSettings:
    """Retry, timeout and eligibility rules for per-paragraph requests."""

    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 60.0
    min_text_length: int = 3
    excluded_tags: tuple[str, ...] = DEFAULT_EXCLUDED_TAGS


@dataclass(slots=True)
class SchedulerSettings:
    lookahead_screens: int = 2
    background_delay: float = 0.2
    screen_size: int = 8
    cancel_on_hide: bool = True


@dataclass(slots=True)
class CacheSettings:
    session_ttl: float = 3600.0
    durable_ttl: float = 86400.0
    max_entries: int = 500
    save_interval: float = 60.0


@dataclass(slots=True)
class OpenAISettings:
    """Configuration block for the OpenAI-compatible annotation provider."""

    model: str = "gpt-4.1-mini"
    api_key: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None
    organization: str | None = None
    temperature: float = 0.1
    max_output_tokens: int = 4096
    request_timeout: float = 60.0
    parallel_requests: int = 2


@dataclass(slots=True)
class AnnotatorConfig:
    """Configuration options for the annotation engine."""

    target_language: str = "English"
    provider_name: str = "openai"
    word_annotation_enabled: bool = True
    phrase_annotation_enabled: bool = True
    cache_path: str | None = None
    vocabulary_path: str | None = None
    alignment: AlignmentSettings = field(default_factory=AlignmentSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    openai: OpenAISettings = field(default_factory=OpenAISettings)

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable dictionary representation of the configuration."""
        data = dict(asdict(self))
        data["pipeline"]["excluded_tags"] = list(self.pipeline.excluded_tags)
        return data


_NESTED_BLOCKS: dict[str, type] = {
    "alignment": AlignmentSettings,
    "pipeline": PipelineSettings,
    "scheduler": SchedulerSettings,
    "cache": CacheSettings,
    "openai": OpenAISettings,
}


def _build_block(block_cls: type, data: Mapping[str, Any]) -> Any:
    allowed = {item.name for item in fields(block_cls)}
    filtered = {key: data[key] for key in data if key in allowed}
    if "excluded_tags" in filtered:
        filtered["excluded_tags"] = tuple(filtered["excluded_tags"])
    return block_cls(**filtered)


def _build_kwargs(data: Mapping[str, Any]) -> dict[str, Any]:
    allowed = {item.name for item in fields(AnnotatorConfig)}
    kwargs = {
        key: data[key]
        for key in data
        if key in allowed and key not in _NESTED_BLOCKS
    }
    for name, block_cls in _NESTED_BLOCKS.items():
        if name not in data:
            continue
        value = data[name]
        if isinstance(value, block_cls):
            kwargs[name] = value
        elif isinstance(value, Mapping):
            kwargs[name] = _build_block(block_cls, value)
    return kwargs


def config_from_dict(data: Mapping[str, Any] | None) -> AnnotatorConfig:
    """Build an AnnotatorConfig from a dictionary-like input."""
    if data is None:
        return AnnotatorConfig()
    return AnnotatorConfig(**_build_kwargs(data))


def config_from_yaml(path: str | Path) -> AnnotatorConfig:
    """Load configuration from a YAML file."""
    contents = Path(path).read_text(encoding="utf-8")
    parsed = yaml.safe_load(contents) or {}
    if not isinstance(parsed, MutableMapping):
        raise ValueError("Configuration YAML must define a mapping.")
    return config_from_dict(parsed)


def load_config(path: str | Path | None = None) -> AnnotatorConfig:
    """Load configuration from YAML when provided, otherwise return defaults."""
    if path is None:
        return AnnotatorConfig()
    return config_from_yaml(path)
