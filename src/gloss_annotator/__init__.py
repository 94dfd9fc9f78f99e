"""
gloss_annotator package exports convenience helpers for library consumers.
"""

from __future__ import annotations

from .alignment import annotate_text
from .cache import AnnotationCache
from .config import AnnotatorConfig, config_from_dict, config_from_yaml, load_config
from .models import AnnotationResponse, ParagraphState, RequestKind
from .pipeline import AnnotationPipeline, CancellationToken
from .providers import build_provider_from_config, create_provider
from .scheduler import ViewportScheduler
from .tokenization import tokenize
from .vocabulary import VocabularyStore

__all__ = [
    "AnnotatorConfig",
    "config_from_dict",
    "config_from_yaml",
    "load_config",
    "annotate_text",
    "tokenize",
    "AnnotationCache",
    "AnnotationPipeline",
    "AnnotationResponse",
    "CancellationToken",
    "ParagraphState",
    "RequestKind",
    "ViewportScheduler",
    "VocabularyStore",
    "create_provider",
    "build_provider_from_config",
]

__version__ = "0.1.0"
