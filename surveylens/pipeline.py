"""
Survey Ingestion Pipeline

Orchestrates parsing, classification, distribution, summarization and
correlation into a complete Session, and optionally commits it.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from surveylens.config import SurveyLensConfig
from surveylens.core.column_classifier import ColumnClassifier, create_classifier
from surveylens.core.correlation import CorrelationBuilder
from surveylens.core.csv_parser import CSVParser
from surveylens.core.distribution import DistributionEngine
from surveylens.core.registry import SessionRegistry
from surveylens.core.session_store import Session
from surveylens.inference.summarizer import SummarizationClient, SummaryOutcome, SummaryRequest

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    """Outcome of one ingestion run."""
    session: Session
    source_bytes: bytes
    defect_count: int = 0
    fallback_count: int = 0
    warnings: List[str] = field(default_factory=list)
    outcomes: Dict[str, SummaryOutcome] = field(default_factory=dict)
    elapsed: float = 0.0


class SurveyIngestionPipeline:
    """
    Main orchestrator for survey ingestion.

    This class coordinates all components to:
    1. Parse the CSV source
    2. Classify its columns
    3. Compute per-column distributions
    4. Summarize every visualizable column concurrently
    5. Build cross-tabulations
    6. Assemble a private Session
    """

    def __init__(
        self,
        config: SurveyLensConfig,
        summarizer: Optional[SummarizationClient] = None,
        classifier: Optional[ColumnClassifier] = None,
        registry: Optional[SessionRegistry] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Complete configuration object
            summarizer: Summarization client (built from config.llm if omitted)
            classifier: Column classification strategy
            registry: Registry used by ingest_and_commit
        """
        self.config = config
        self.parser = CSVParser()
        self.classifier = classifier or create_classifier(
            config.classifier, type_aware=config.type_aware_classification
        )
        self.engine = DistributionEngine()
        self.correlation_builder = CorrelationBuilder(config.correlation)
        self.summarizer = summarizer or SummarizationClient(config.llm)
        self.registry = registry

    def start(self, path: str, title: str, description: str = "") -> "asyncio.Task[IngestionReport]":
        """
        Schedule a file ingestion on the running loop.

        Cancelling the returned task cancels every in-flight summary request;
        nothing is committed.
        """
        return asyncio.ensure_future(self.ingest_file(path, title, description))

    async def ingest_file(self, path: str, title: str, description: str = "") -> IngestionReport:
        """Read a CSV file without blocking the loop and ingest it."""
        source = Path(path)
        data = await asyncio.to_thread(source.read_bytes)
        return await self.ingest_bytes(data, title, description, source_name=source.name)

    async def ingest_text(
        self,
        text: str,
        title: str,
        description: str = "",
        source_name: Optional[str] = None,
    ) -> IngestionReport:
        """Ingest CSV text already in memory."""
        return await self.ingest_bytes(text.encode("utf-8"), title, description, source_name)

    async def ingest_bytes(
        self,
        data: bytes,
        title: str,
        description: str = "",
        source_name: Optional[str] = None,
    ) -> IngestionReport:
        """
        Run the complete ingestion pipeline.

        Args:
            data: Raw CSV bytes, kept unmodified for export
            title: Session title
            description: Session description
            source_name: Original file name

        Returns:
            IngestionReport holding the assembled (uncommitted) session

        Raises:
            ParseError: the file has no usable header or rows
        """
        start_time = time.time()

        # Phase 1: Parse
        parsed = self.parser.parse_bytes(data)
        logger.info(f"Parsed {parsed.row_count} rows, {len(parsed.headers)} headers")

        warnings = []
        if parsed.defect_count:
            warnings.append(f"Skipped {parsed.defect_count} malformed rows (lines {parsed.defective_lines[:10]})")

        # Phase 2: Classify
        classification = self.classifier.classify(parsed)
        warnings.extend(str(w) for w in classification.warnings)
        columns = classification.columns
        responses = classification.responses

        # Phase 3: Distributions
        distributions = self.engine.compute_all(responses, columns)

        # Phase 4: Summaries (fan-out, then join on all of them)
        requests = [SummaryRequest.from_distribution(d) for d in distributions.values()]
        outcomes = await self.summarizer.summarize_all(requests)
        fallback_count = sum(1 for o in outcomes.values() if not o.ok)
        if fallback_count:
            warnings.append(f"{fallback_count} of {len(outcomes)} column summaries unavailable")

        # Phase 5: Cross-tabulations
        correlation = self.correlation_builder.build(responses, columns)

        # Phase 6: Assemble
        session = Session(
            id=generate_session_id(title, parsed.fingerprint),
            title=title,
            description=description,
            source_name=source_name,
            participation_count=len(responses),
            is_public=False,
            columns=columns,
            responses=responses,
            column_descriptions={cid: o.text for cid, o in outcomes.items()},
            correlation_data=correlation,
            source_fingerprint=parsed.fingerprint,
            warnings=warnings,
        )

        elapsed = time.time() - start_time
        logger.info(
            f"Ingested '{title}': {len(columns)} columns "
            f"({len(session.visualizable_columns)} visualizable) in {elapsed:.1f}s"
        )

        return IngestionReport(
            session=session,
            source_bytes=data,
            defect_count=parsed.defect_count,
            fallback_count=fallback_count,
            warnings=warnings,
            outcomes=outcomes,
            elapsed=elapsed,
        )

    async def ingest_and_commit(self, path: str, title: str, description: str = "") -> IngestionReport:
        """
        Ingest a file and commit the resulting session to the registry.

        Raises:
            ParseError: unusable source file
            PersistenceError: commit failed (session kept in registry.pending)
        """
        if self.registry is None:
            raise ValueError("ingest_and_commit requires a registry")

        report = await self.ingest_file(path, title, description)
        self.registry.commit(report.session, report.source_bytes)
        return report


def generate_session_id(title: str, fingerprint: str) -> str:
    """Readable, collision-resistant session id: <slug>-<fingerprint>-<millis>."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:32] or "session"
    return f"{slug}-{fingerprint}-{int(time.time() * 1000)}"
