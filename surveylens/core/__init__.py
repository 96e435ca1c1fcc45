"""Core modules for SurveyLens."""

from surveylens.core.csv_parser import CSVParser, ParsedCSV
from surveylens.core.column_classifier import (
    ColumnClassifier,
    HeuristicColumnClassifier,
    TypeAwareColumnClassifier,
)
from surveylens.core.distribution import DistributionEngine
from surveylens.core.correlation import CorrelationBuilder
from surveylens.core.registry import SessionRegistry, SessionPatch

__all__ = [
    "CSVParser",
    "ParsedCSV",
    "ColumnClassifier",
    "HeuristicColumnClassifier",
    "TypeAwareColumnClassifier",
    "DistributionEngine",
    "CorrelationBuilder",
    "SessionRegistry",
    "SessionPatch",
]
