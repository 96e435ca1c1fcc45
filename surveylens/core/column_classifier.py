"""
Column Classifier

Decides, per column, whether a survey question is fit for categorical
visualization. Classification is a heuristic over the column's values, so
it is exposed as a replaceable strategy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging
import re

from surveylens.config import ClassifierConfig
from surveylens.core.csv_parser import ParsedCSV
from surveylens.core.errors import EmptyClassificationResult
from surveylens.core.session_store import Column, ColumnKind, Response

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NUMBER_PATTERN = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")


@dataclass
class ColumnStats:
    """Statistics over one column's non-empty values."""
    total_valid: int = 0
    unique_count: int = 0
    average_length: float = 0.0
    email_like: bool = False
    all_numeric: bool = False

    @property
    def uniqueness_ratio(self) -> float:
        if self.total_valid == 0:
            return 0.0
        return self.unique_count / self.total_valid


@dataclass
class ClassificationResult:
    """Columns and responses derived from one parsed file."""
    columns: List[Column]
    responses: List[Response]
    stats: Dict[str, ColumnStats] = field(default_factory=dict)
    exclusion_reasons: Dict[str, str] = field(default_factory=dict)
    warnings: List[EmptyClassificationResult] = field(default_factory=list)

    @property
    def visualizable_columns(self) -> List[Column]:
        return [c for c in self.columns if c.is_visualizable]


class ColumnClassifier(ABC):
    """
    Base strategy for column classification.

    Subclasses decide eligibility and kind per column; building column ids,
    dropping timestamp headers and assembling responses is shared.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def classify(self, parsed: ParsedCSV) -> ClassificationResult:
        """
        Classify every column of a parsed file.

        Args:
            parsed: Output of the CSV parser

        Returns:
            ClassificationResult with one Column per non-timestamp header
        """
        columns = []
        indices = []
        stats = {}
        reasons = {}

        for index, header in enumerate(parsed.headers):
            if self.config.timestamp_marker in header.lower():
                logger.debug(f"Dropping timestamp column '{header}'")
                continue

            values = [
                row[index].strip() if index < len(row) else ""
                for row in parsed.rows
            ]
            column_stats = self.compute_stats(values)
            reason = self.exclusion_reason(column_stats)

            column = Column(
                id=f"{parsed.fingerprint}_c{index}",
                label=header,
                kind=self.infer_kind(column_stats),
                is_visualizable=reason is None,
            )
            if reason:
                reasons[column.id] = reason
                logger.debug(f"Column '{header}' not visualizable: {reason}")

            columns.append(column)
            indices.append(index)
            stats[column.id] = column_stats

        responses = []
        for row in parsed.rows:
            responses.append({
                column.id: row[index].strip() if index < len(row) else ""
                for column, index in zip(columns, indices)
            })

        result = ClassificationResult(
            columns=columns,
            responses=responses,
            stats=stats,
            exclusion_reasons=reasons,
        )

        if not result.visualizable_columns:
            warning = EmptyClassificationResult(
                f"None of the {len(columns)} columns qualified for charting"
            )
            logger.warning(str(warning))
            result.warnings.append(warning)

        return result

    def compute_stats(self, values: List[str]) -> ColumnStats:
        """Compute statistics over a column's non-empty values."""
        valid = [v for v in values if v]
        if not valid:
            return ColumnStats()

        sample = valid[:self.config.email_sample_size]
        email_matches = sum(1 for v in sample if EMAIL_PATTERN.match(v))

        return ColumnStats(
            total_valid=len(valid),
            unique_count=len(set(valid)),
            average_length=sum(len(v) for v in valid) / len(valid),
            email_like=email_matches * 2 > len(sample),
            all_numeric=all(NUMBER_PATTERN.match(v) for v in valid),
        )

    @abstractmethod
    def exclusion_reason(self, stats: ColumnStats) -> Optional[str]:
        """Return why a column cannot be charted, or None if it can."""
        pass

    @abstractmethod
    def infer_kind(self, stats: ColumnStats) -> ColumnKind:
        """Return the column kind."""
        pass


class HeuristicColumnClassifier(ColumnClassifier):
    """
    Threshold-based classifier.

    A column is not visualizable when it has no variation, looks like an
    identifier, holds free text or email addresses, or has too many
    categories to chart legibly. Everything is categorical.
    """

    def exclusion_reason(self, stats: ColumnStats) -> Optional[str]:
        cfg = self.config

        if stats.total_valid <= 1:
            return "too few answers"
        if stats.unique_count <= 1:
            return "no variation"
        if stats.uniqueness_ratio > cfg.identifier_ratio and stats.total_valid > cfg.identifier_min_rows:
            return f"looks like an identifier ({stats.uniqueness_ratio:.0%} unique)"
        if stats.average_length > cfg.free_text_length:
            return f"free text (average length {stats.average_length:.0f})"
        if stats.email_like:
            return "email addresses"
        if stats.unique_count >= cfg.max_categories:
            return f"too many categories ({stats.unique_count})"
        return None

    def infer_kind(self, stats: ColumnStats) -> ColumnKind:
        return ColumnKind.CATEGORICAL


class TypeAwareColumnClassifier(HeuristicColumnClassifier):
    """
    Heuristic classifier that also detects numeric columns.

    Eligibility is unchanged; columns whose values are all numbers with
    more than `numeric_min_unique` distinct values are marked numeric.
    """

    def infer_kind(self, stats: ColumnStats) -> ColumnKind:
        if stats.all_numeric and stats.unique_count > self.config.numeric_min_unique:
            return ColumnKind.NUMERIC
        return ColumnKind.CATEGORICAL


def create_classifier(config: ClassifierConfig, type_aware: bool = False) -> ColumnClassifier:
    """Factory for the configured classification strategy."""
    if type_aware:
        return TypeAwareColumnClassifier(config)
    return HeuristicColumnClassifier(config)
