"""
Session Store

Data structures shared by the ingestion pipeline and the session registry:
columns, responses, distributions, correlation maps and the session record
that bundles them together.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any
from enum import Enum
from datetime import datetime
import json


# A response maps Column.id -> raw cell text ("" when missing)
Response = Dict[str, str]

# "<label_a> x <label_b>" -> value_a -> value_b -> count
CorrelationMap = Dict[str, Dict[str, Dict[str, int]]]


class ColumnKind(Enum):
    """How a column's values should be read."""
    CATEGORICAL = "categorical"
    NUMERIC = "numeric"


class SessionStatus(Enum):
    """Lifecycle state shown next to a session."""
    LIVE = "live"
    PAUSED = "paused"
    ARCHIVED = "archived"


@dataclass
class Column:
    """A survey question as it appears in the source file."""
    id: str
    label: str
    kind: ColumnKind = ColumnKind.CATEGORICAL
    is_visualizable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "is_visualizable": self.is_visualizable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            id=data["id"],
            label=data["label"],
            kind=ColumnKind(data.get("kind", "categorical")),
            is_visualizable=bool(data.get("is_visualizable", False)),
        )


@dataclass
class DistributionEntry:
    """One distinct value of a column with its frequency."""
    name: str
    count: int
    percentage: float  # count / total_valid * 100, one decimal


@dataclass
class ColumnDistribution:
    """Frequency breakdown of one column."""
    column_id: str
    label: str
    entries: List[DistributionEntry] = field(default_factory=list)
    total_valid: int = 0

    @property
    def distinct_count(self) -> int:
        return len(self.entries)

    @property
    def percentage_total(self) -> float:
        return sum(e.percentage for e in self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Session:
    """
    One ingested dataset plus its derived analysis artifacts.

    Created atomically at the end of a successful ingestion. After that only
    the visibility flag and per-column visualizability are mutated.
    """
    id: str
    title: str
    description: str = ""
    source_name: Optional[str] = None
    participation_count: int = 0
    last_updated: str = field(default_factory=lambda: datetime.now().isoformat())
    is_public: bool = False

    columns: List[Column] = field(default_factory=list)
    responses: List[Response] = field(default_factory=list)
    column_descriptions: Dict[str, str] = field(default_factory=dict)
    correlation_data: CorrelationMap = field(default_factory=dict)

    # Display state
    status: SessionStatus = SessionStatus.LIVE
    show_charts: bool = True
    show_ai_insights: bool = True
    enable_csv_download: bool = True

    # Provenance
    source_fingerprint: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def visualizable_columns(self) -> List[Column]:
        """Columns flagged for chart rendering, in source order."""
        return [c for c in self.columns if c.is_visualizable]

    @property
    def visibility(self) -> str:
        return "public" if self.is_public else "private"

    def get_column(self, column_id: str) -> Optional[Column]:
        """Get a column by id."""
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def touch(self):
        """Refresh the last-updated timestamp."""
        self.last_updated = datetime.now().isoformat()

    def check_invariants(self) -> List[str]:
        """
        Check the structural invariants of the session.

        Returns:
            List of human-readable violations (empty when consistent)
        """
        # Imported here to keep the data model free of engine imports at module load
        from surveylens.core.distribution import DistributionEngine

        problems = []

        if self.participation_count != len(self.responses):
            problems.append(
                f"participation_count={self.participation_count} but "
                f"{len(self.responses)} responses stored"
            )

        column_ids = {c.id for c in self.columns}
        if len(column_ids) != len(self.columns):
            problems.append("duplicate column ids")

        for key in self.column_descriptions:
            if key not in column_ids:
                problems.append(f"description for unknown column '{key}'")

        engine = DistributionEngine()
        for column in self.columns:
            dist = engine.compute(self.responses, column)
            drift = engine.percentage_drift(dist)
            if drift > 0.1 * dist.distinct_count + 1e-9:
                problems.append(
                    f"percentages of '{column.label}' sum to {dist.percentage_total:.1f}"
                )

        return problems

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to a JSON-ready record."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "source_name": self.source_name,
            "participation_count": self.participation_count,
            "last_updated": self.last_updated,
            "is_public": self.is_public,
            "status": self.status.value,
            "show_charts": self.show_charts,
            "show_ai_insights": self.show_ai_insights,
            "enable_csv_download": self.enable_csv_download,
            "source_fingerprint": self.source_fingerprint,
            "warnings": list(self.warnings),
            "columns": [c.to_dict() for c in self.columns],
            "responses": [dict(r) for r in self.responses],
            "column_descriptions": dict(self.column_descriptions),
            "correlation_data": self.correlation_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """Rebuild a session from a stored record."""
        responses = [
            {k: "" if v is None else str(v) for k, v in row.items()}
            for row in data.get("responses", [])
        ]
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            source_name=data.get("source_name"),
            participation_count=data.get("participation_count", len(responses)),
            last_updated=data.get("last_updated") or datetime.now().isoformat(),
            is_public=bool(data.get("is_public", False)),
            status=SessionStatus(data.get("status", "live")),
            show_charts=data.get("show_charts", True),
            show_ai_insights=data.get("show_ai_insights", True),
            enable_csv_download=data.get("enable_csv_download", True),
            source_fingerprint=data.get("source_fingerprint"),
            warnings=list(data.get("warnings", [])),
            columns=[Column.from_dict(c) for c in data.get("columns", [])],
            responses=responses,
            column_descriptions=dict(data.get("column_descriptions", {})),
            correlation_data=data.get("correlation_data", {}),
        )

    def to_json(self, indent: int = 2) -> str:
        """Convert session to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def get_statistics(self) -> Dict[str, Any]:
        """Get summary statistics."""
        return {
            "participation_count": self.participation_count,
            "total_columns": len(self.columns),
            "visualizable_columns": len(self.visualizable_columns),
            "described_columns": len(self.column_descriptions),
            "correlation_pairs": len(self.correlation_data),
            "visibility": self.visibility,
            "status": self.status.value,
        }
