from .ai_classifier import AIClassifierService
from .analysis import AnalysisContext, AnalysisSource, AnalysisVerdict, analyze, build_context
from .dataset_lookup import classify_with_dataset, is_dataset_available
from .reference_matcher import classify_ingredient, classify_with_rules, load_reference_table
from .tokenizer import tokenize

__all__ = [
    "AIClassifierService",
    "AnalysisContext",
    "AnalysisSource",
    "AnalysisVerdict",
    "analyze",
    "build_context",
    "classify_ingredient",
    "classify_with_dataset",
    "classify_with_rules",
    "is_dataset_available",
    "load_reference_table",
    "tokenize",
]
