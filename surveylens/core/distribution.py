"""
Distribution Engine

Computes frequency and percentage breakdowns of a single column.
"""

from typing import Dict, List, Sequence
from collections import Counter
import logging

from surveylens.core.session_store import (
    Column,
    ColumnDistribution,
    DistributionEntry,
    Response,
)

logger = logging.getLogger(__name__)


class DistributionEngine:
    """
    Counts distinct non-empty values of a column.

    Entries are ordered by descending count; equal counts keep the order in
    which the values first appeared in the responses.
    """

    def compute(self, responses: Sequence[Response], column: Column) -> ColumnDistribution:
        """
        Compute the distribution of one column.

        Args:
            responses: Ordered responses of a session
            column: Column to break down

        Returns:
            ColumnDistribution with sorted entries
        """
        counts = Counter(
            value
            for value in ((response.get(column.id) or "").strip() for response in responses)
            if value
        )

        total_valid = sum(counts.values())

        # most_common() keeps first-insertion order among equal counts
        ranked = counts.most_common()

        entries = [
            DistributionEntry(
                name=name,
                count=count,
                percentage=round(count / total_valid * 100, 1) if total_valid else 0.0,
            )
            for name, count in ranked
        ]

        return ColumnDistribution(
            column_id=column.id,
            label=column.label,
            entries=entries,
            total_valid=total_valid,
        )

    def compute_all(
        self,
        responses: Sequence[Response],
        columns: Sequence[Column],
        visualizable_only: bool = True,
    ) -> Dict[str, ColumnDistribution]:
        """Compute distributions keyed by column id, in column order."""
        result = {}
        for column in columns:
            if visualizable_only and not column.is_visualizable:
                continue
            result[column.id] = self.compute(responses, column)
        return result

    @staticmethod
    def percentage_drift(distribution: ColumnDistribution) -> float:
        """Distance of the percentage sum from 100 (0 for empty columns)."""
        if not distribution.entries:
            return 0.0
        return abs(distribution.percentage_total - 100.0)

    @staticmethod
    def top_values(distribution: ColumnDistribution, limit: int = 10) -> List[str]:
        """Compact "value(count)" strings for the most frequent values."""
        return [f"{e.name}({e.count})" for e in distribution.entries[:limit]]
