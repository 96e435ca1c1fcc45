"""
Sample Survey Data

Generates a deterministic academic-profile survey export for demonstration
purposes, and a baseline session built from it that can serve as the
registry's seed set.
"""

import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import List

from surveylens.config import ClassifierConfig, CorrelationConfig
from surveylens.core.column_classifier import HeuristicColumnClassifier
from surveylens.core.correlation import CorrelationBuilder
from surveylens.core.csv_parser import parse_csv
from surveylens.core.distribution import DistributionEngine
from surveylens.core.session_store import Session

BASELINE_SESSION_ID = "baseline-academic-profile-2024"

FIELDS = ["Computer Science", "Mathematics", "Physics", "Digital Design", "Jurisprudence"]
GPA_BRACKETS = ["Below 2.5", "2.5 - 3.0", "3.0 - 3.5", "3.5 - 3.75", "3.75 - 4.0"]
ENTRANCE_SCORES = ["< 450", "450 - 500", "500 - 530", "530+", "Not Reported"]
HOUSING = ["On campus", "Off campus", "With family"]


def _quote(value: str) -> str:
    if "," in value or '"' in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def generate_survey_csv(rows: int = 240, seed: int = 2024) -> str:
    """
    Generate survey CSV text.

    Columns: a timestamp, three categorical questions, a housing question
    with some blank answers, a respondent email and a free-text comment.
    """
    rng = random.Random(seed)
    start = datetime(2024, 3, 1, 9, 0, 0)

    lines = [
        "Timestamp,Primary Field of Academic Interest,Current GPA Bracket,"
        "Standardized Entrance Score,Housing,Email Address,Comments"
    ]
    for i in range(rows):
        stamp = start + timedelta(minutes=17 * i)
        housing = rng.choice(HOUSING) if rng.random() > 0.1 else ""
        comment = ""
        if rng.random() > 0.3:
            comment = f"#{i}: " + rng.choice([
                "Looking forward to the next term",
                "Would like more evening classes, especially in the spring",
                "No further comments",
            ])
        fields = [
            stamp.strftime("%Y/%m/%d %H:%M:%S"),
            rng.choice(FIELDS),
            rng.choice(GPA_BRACKETS),
            rng.choice(ENTRANCE_SCORES),
            housing,
            f"student{i}@example.edu",
            comment,
        ]
        lines.append(",".join(_quote(f) for f in fields))

    return "\n".join(lines) + "\n"


def write_sample_survey(path: str, rows: int = 240, seed: int = 2024) -> Path:
    """Write the generated survey to disk."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(generate_survey_csv(rows, seed), encoding="utf-8")
    return target


def build_seed_sessions() -> List[Session]:
    """
    Build the baseline session set.

    Descriptions are templated from the distributions rather than
    generated, so the seed needs no summarization service.
    """
    parsed = parse_csv(generate_survey_csv(rows=1240, seed=7))
    result = HeuristicColumnClassifier(ClassifierConfig()).classify(parsed)
    engine = DistributionEngine()

    descriptions = {}
    for column_id, dist in engine.compute_all(result.responses, result.columns).items():
        top = dist.entries[0]
        descriptions[column_id] = (
            f"Answers are distributed across {dist.distinct_count} values. "
            f"{top.name} is the most frequent answer at {top.percentage:.1f}%."
        )

    session = Session(
        id=BASELINE_SESSION_ID,
        title="Academic Profile Cohort Analysis 2024",
        description=(
            "Descriptive analysis of departmental interests and academic "
            "benchmarks for the current admission cycle."
        ),
        source_name="academic_profile_2024.csv",
        participation_count=len(result.responses),
        last_updated=datetime(2024, 6, 1).isoformat(),
        is_public=True,
        columns=result.columns,
        responses=result.responses,
        column_descriptions=descriptions,
        correlation_data=CorrelationBuilder(CorrelationConfig()).build(result.responses, result.columns),
        source_fingerprint=parsed.fingerprint,
    )
    return [session]
