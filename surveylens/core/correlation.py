"""
Correlation Builder

Precomputes pairwise cross-tabulations between the first visualizable
columns of a session so that cross-tab questions ("how many respondents
who answered A to X answered B to Y") can be answered by direct lookup.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

from surveylens.config import CorrelationConfig
from surveylens.core.session_store import Column, CorrelationMap, Response

logger = logging.getLogger(__name__)

PAIR_SEPARATOR = " x "


class CorrelationBuilder:
    """
    Builds the correlation map of a session.

    Only the first `max_columns` visualizable columns take part, which caps
    the map at K*(K-1)/2 pairs. Missing values are counted under an explicit
    unknown bucket so every pair accounts for every response.
    """

    def __init__(self, config: Optional[CorrelationConfig] = None):
        self.config = config or CorrelationConfig()

    def select_columns(self, columns: Sequence[Column]) -> List[Column]:
        """Visualizable columns in order, capped at max_columns."""
        return [c for c in columns if c.is_visualizable][:self.config.max_columns]

    def build(self, responses: Sequence[Response], columns: Sequence[Column]) -> CorrelationMap:
        """
        Build cross-tabulations for every ordered pair (i < j).

        Args:
            responses: Ordered responses of a session
            columns: Session columns; non-visualizable ones are ignored

        Returns:
            Mapping "<label_i> x <label_j>" -> value_i -> value_j -> count
        """
        selected = self.select_columns(columns)
        labels = pair_labels(selected)
        unknown = self.config.unknown_label
        result: CorrelationMap = {}

        for i, col_a in enumerate(selected):
            for col_b in selected[i + 1:]:
                key = pair_key(labels[col_a.id], labels[col_b.id])
                table = result.setdefault(key, {})
                for response in responses:
                    value_a = (response.get(col_a.id) or "").strip() or unknown
                    value_b = (response.get(col_b.id) or "").strip() or unknown
                    row = table.setdefault(value_a, {})
                    row[value_b] = row.get(value_b, 0) + 1

        logger.debug(f"Built {len(result)} cross-tabulations over {len(selected)} columns")
        return result


def pair_labels(columns: Sequence[Column]) -> Dict[str, str]:
    """
    Label of each column as used in pair keys, keyed by column id.

    The first column with a given label keeps it; later repeats are
    suffixed with their column id so no two pairs share a key.
    """
    labels = {}
    taken = set()
    for column in columns:
        label = column.label
        if label in taken:
            label = f"{label} [{column.id}]"
        taken.add(label)
        labels[column.id] = label
    return labels


def pair_key(label_a: str, label_b: str) -> str:
    """Key of a column pair in the correlation map."""
    return f"{label_a}{PAIR_SEPARATOR}{label_b}"


def lookup(
    correlation: CorrelationMap,
    label_a: str,
    label_b: str,
    value_a: str,
    value_b: str,
) -> Optional[int]:
    """
    Count respondents who gave value_a for column A and value_b for column B.

    The pair may be stored in either order. Returns None when the pair was
    not precomputed, 0 when the combination never occurs.
    """
    table, (first, second) = _find_pair(correlation, label_a, label_b, value_a, value_b)
    if table is None:
        return None
    return table.get(first, {}).get(second, 0)


def _find_pair(correlation, label_a, label_b, value_a, value_b) -> Tuple[Optional[dict], Tuple[str, str]]:
    forward = correlation.get(pair_key(label_a, label_b))
    if forward is not None:
        return forward, (value_a, value_b)
    backward = correlation.get(pair_key(label_b, label_a))
    if backward is not None:
        return backward, (value_b, value_a)
    return None, (value_a, value_b)
