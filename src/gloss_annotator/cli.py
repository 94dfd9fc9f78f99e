from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, TypedDict

import typer
import yaml

from .alignment import annotate_text
from .cache import AnnotationCache
from .config import AnnotatorConfig, load_config
from .epub import EPUBParseError, read_epub_chapters, write_epub_with_chapters
from .models import AnnotationResponse, ParagraphState
from .pipeline import AnnotationPipeline
from .providers import build_provider_from_config
from .scheduler import ViewportScheduler
from .surface import HtmlDocumentSurface
from .vocabulary import VocabularyStore, load_wordlist

app = typer.Typer(help="Gloss annotator CLI.", no_args_is_help=True)

# File types the annotate command knows how to read.
HTML_EXTENSIONS = {".html", ".htm", ".xhtml"}
SUPPORTED_INPUT_EXTENSIONS = HTML_EXTENSIONS | {".txt", ".epub"}


class UsagePayload(TypedDict):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class AnnotateSummary(TypedDict):
    input: str
    output: str
    paragraphs: int
    states: Dict[str, int]
    provider_calls: int
    usage: UsagePayload


@app.callback()
def configure_logging(
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."
    ),
) -> None:
    """Gloss annotator: align LLM glosses with reading text."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def annotate(
    input_path: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False),
    output_path: Path | None = typer.Option(None, "--output", "-o"),
    config: Path | None = typer.Option(None, "--config", "-c"),
    provider_name: str | None = typer.Option(
        None, "--provider", "-p", help="Provider to use ('openai' or 'static')."
    ),
    responses_path: Path | None = typer.Option(
        None,
        "--responses",
        exists=True,
        readable=True,
        help="JSON file of canned responses for the static provider.",
    ),
    target_language: str | None = typer.Option(
        None, "--target-language", "-t", help="Language the glosses are written in."
    ),
    vocabulary_path: Path | None = typer.Option(
        None, "--vocabulary", help="Vocabulary JSON used for known/unknown markers."
    ),
    cache_path: Path | None = typer.Option(
        None, "--cache-path", help="Durable cache file for provider responses."
    ),
    phrases: bool | None = typer.Option(
        None, "--phrases/--no-phrases", help="Toggle phrase and proper-noun glosses."
    ),
    screen_size: int | None = typer.Option(
        None, "--screen-size", help="Paragraphs per simulated screen."
    ),
    openai_model: str | None = typer.Option(
        None, "--openai-model", help="OpenAI model identifier (e.g., gpt-4.1-mini)."
    ),
    openai_api_key: str | None = typer.Option(
        None, "--openai-api-key", help="Explicit OpenAI API key (prefer env vars)."
    ),
    openai_api_key_env: str | None = typer.Option(
        None,
        "--openai-api-key-env",
        help="Environment variable to read the OpenAI API key from.",
    ),
    openai_base_url: str | None = typer.Option(
        None, "--openai-base-url", help="Custom OpenAI base URL (Azure, proxy, etc.)."
    ),
    openai_parallel_requests: int | None = typer.Option(
        None, "--openai-parallel-requests", help="Max parallel OpenAI calls."
    ),
) -> None:
    """Annotate an HTML, text or EPUB document by paging through it like a reader."""
    suffix = input_path.suffix.lower()
    if suffix not in SUPPORTED_INPUT_EXTENSIONS:
        raise typer.BadParameter(f"Unsupported input type: {input_path.name}")
    cfg = load_config(config)
    _apply_annotation_overrides(
        cfg,
        provider_name,
        target_language,
        vocabulary_path,
        cache_path,
        phrases,
        screen_size,
    )
    _apply_openai_overrides(
        cfg,
        openai_model,
        openai_api_key,
        openai_api_key_env,
        openai_base_url,
        openai_parallel_requests,
    )
    destination = output_path or _default_output_path(input_path)

    try:
        provider = build_provider_from_config(
            cfg, responses_path=str(responses_path) if responses_path else None
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    vocabulary = VocabularyStore(cfg.vocabulary_path)
    vocabulary.load()
    cache = AnnotationCache(cfg.cache, path=cfg.cache_path)
    cache.load()
    pipeline = AnnotationPipeline(provider, cfg, cache=cache, is_known=vocabulary.is_known)

    try:
        if suffix == ".epub":
            paragraphs = asyncio.run(_annotate_epub(input_path, destination, pipeline, cfg))
        else:
            raw = input_path.read_text(encoding="utf-8")
            if suffix == ".txt":
                surface = HtmlDocumentSurface.from_text(raw, screen_size=cfg.scheduler.screen_size)
            else:
                surface = HtmlDocumentSurface(raw, screen_size=cfg.scheduler.screen_size)
            paragraphs = asyncio.run(_read_through(surface, pipeline, cfg))
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(surface.serialize(), encoding="utf-8")
    except EPUBParseError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        cache.flush()

    typer.echo(
        json.dumps(_build_summary(input_path, destination, paragraphs, pipeline), indent=2)
    )


@app.command()
def align(
    text: str = typer.Option(..., "--text", help="Paragraph text to annotate."),
    response_path: Path = typer.Option(
        ..., "--response", exists=True, readable=True, help="Provider response JSON."
    ),
    config: Path | None = typer.Option(None, "--config", "-c"),
    vocabulary_path: Path | None = typer.Option(None, "--vocabulary"),
) -> None:
    """Align a stored provider response with text and print the markup."""
    cfg = load_config(config)
    vocabulary = VocabularyStore(vocabulary_path or cfg.vocabulary_path)
    vocabulary.load()
    data = json.loads(response_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise typer.BadParameter("Response JSON must be an object.")
    result = annotate_text(
        text,
        AnnotationResponse.from_dict(data),
        vocabulary.is_known,
        cfg.alignment,
        include_phrases=cfg.phrase_annotation_enabled,
    )
    typer.echo(result.markup)


@app.command("print-config")
def print_config() -> None:
    """Print the default configuration as YAML."""
    cfg = AnnotatorConfig()
    typer.echo(yaml.safe_dump(cfg.to_dict(), sort_keys=False))


@app.command("clean-cache")
def clean_cache(
    cache_path: Path | None = typer.Option(None, "--cache-path"),
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """Drop expired entries from the durable response cache."""
    cfg = load_config(config)
    path = cache_path or (Path(cfg.cache_path) if cfg.cache_path else None)
    if path is None:
        raise typer.BadParameter("No cache path configured; pass --cache-path.")
    cache = AnnotationCache(cfg.cache, path=path)
    cache.load()
    removed = cache.clean_expired()
    cache.save()
    typer.echo(f"Removed {removed} expired entries; {len(cache)} remain in {path}")


@app.command("vocab-import")
def vocab_import(
    wordlist: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False),
    vocabulary_path: Path = typer.Option(..., "--vocabulary"),
    replace: bool = typer.Option(
        False, "--replace/--merge", help="Replace the vocabulary instead of merging."
    ),
) -> None:
    """Import a .txt or .json word list into a vocabulary file."""
    try:
        words = load_wordlist(wordlist)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    store = VocabularyStore(vocabulary_path)
    store.load()
    if replace:
        count = store.replace_with_wordlist(words)
        message = f"Vocabulary replaced with {count} entries"
    else:
        count = store.import_words(words)
        message = f"Imported {count} new entries ({len(store)} total)"
    store.save()
    typer.echo(f"{message} in {vocabulary_path}")


def main() -> None:
    app()


def _apply_annotation_overrides(
    config: AnnotatorConfig,
    provider_name: str | None,
    target_language: str | None,
    vocabulary_path: Path | None,
    cache_path: Path | None,
    phrases: bool | None,
    screen_size: int | None,
) -> None:
    """Apply CLI overrides to top-level annotation settings when provided."""
    if provider_name:
        config.provider_name = provider_name
    if target_language:
        config.target_language = target_language
    if vocabulary_path:
        config.vocabulary_path = str(vocabulary_path)
    if cache_path:
        config.cache_path = str(cache_path)
    if phrases is not None:
        config.phrase_annotation_enabled = phrases
    if screen_size is not None:
        config.scheduler.screen_size = screen_size


def _apply_openai_overrides(
    config: AnnotatorConfig,
    openai_model: str | None,
    openai_api_key: str | None,
    openai_api_key_env: str | None,
    openai_base_url: str | None,
    openai_parallel_requests: int | None,
) -> None:
    """Override OpenAI settings from CLI flags."""
    settings = config.openai
    if openai_model:
        settings.model = openai_model
    if openai_api_key:
        settings.api_key = openai_api_key
    if openai_api_key_env:
        settings.api_key_env = openai_api_key_env
    if openai_base_url:
        settings.base_url = openai_base_url
    if openai_parallel_requests is not None:
        settings.parallel_requests = openai_parallel_requests


async def _read_through(
    surface: HtmlDocumentSurface, pipeline: AnnotationPipeline, config: AnnotatorConfig
) -> List[str]:
    """Scroll through every screen of a surface, letting the scheduler annotate it."""
    scheduler = ViewportScheduler(pipeline, surface, config.scheduler)
    scheduler.start()
    for screen in range(surface.screen_count):
        surface.scroll_to(screen)
        await scheduler.drain()
    await scheduler.stop()
    return [container.element_id for container in surface.containers()]


async def _annotate_epub(
    source: Path, destination: Path, pipeline: AnnotationPipeline, config: AnnotatorConfig
) -> List[str]:
    replacements: Dict[str, str] = {}
    paragraphs: List[str] = []
    for chapter in read_epub_chapters(source):
        surface = HtmlDocumentSurface(
            chapter.markup,
            screen_size=config.scheduler.screen_size,
            id_prefix=f"{chapter.path}#",
        )
        paragraphs.extend(await _read_through(surface, pipeline, config))
        replacements[chapter.path] = surface.serialize()
    write_epub_with_chapters(source, destination, replacements)
    return paragraphs


def _default_output_path(input_path: Path) -> Path:
    if input_path.suffix.lower() == ".epub":
        return input_path.with_name(f"{input_path.stem}.annotated.epub")
    return input_path.with_name(f"{input_path.stem}.annotated.html")


def _build_summary(
    input_path: Path, output_path: Path, paragraphs: List[str], pipeline: AnnotationPipeline
) -> AnnotateSummary:
    counts: Dict[str, int] = {state.value: 0 for state in ParagraphState}
    for element_id in paragraphs:
        counts[pipeline.state(element_id).value] += 1
    usage = pipeline.usage
    return {
        "input": str(input_path),
        "output": str(output_path),
        "paragraphs": len(paragraphs),
        "states": counts,
        "provider_calls": pipeline.provider_calls,
        "usage": {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        },
    }


if __name__ == "__main__":
    main()
