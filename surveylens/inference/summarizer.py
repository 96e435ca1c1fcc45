"""
Summarization Client

Sends per-column distributions to a text-generation service and returns
short, neutral, descriptive summaries. Every failure degrades to a
fallback string for that column only.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

import openai
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from surveylens.config import LLMConfig
from surveylens.core.errors import SummarizationError
from surveylens.core.session_store import ColumnDistribution, DistributionEntry
from surveylens.inference.prompts import PromptTemplates

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Summary unavailable."

SECOND_PERSON_PATTERN = re.compile(r"\b(you|your|yours|yourself|yourselves)\b", re.IGNORECASE)
PRESCRIPTIVE_PATTERN = re.compile(
    r"\b(should|must|ought|recommend\w*|advis\w*|advice|suggest\w*|predict\w*|"
    r"forecast\w*|will likely|is likely to|are likely to|going to)\b",
    re.IGNORECASE,
)
SENTENCE_END_PATTERN = re.compile(r"[.!?]+(?=\s|$)")
NUMBER_PATTERN = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?")


class ColumnSummaryPayload(BaseModel):
    """Strict shape of the service's JSON answer."""
    model_config = ConfigDict(extra="forbid", strict=True)

    column_id: str
    summary: str = Field(min_length=1)


@dataclass
class SummaryRequest:
    """Everything the service is told about one column."""
    column_id: str
    column_label: str
    distribution: List[DistributionEntry]
    total_valid: int

    @classmethod
    def from_distribution(cls, distribution: ColumnDistribution) -> "SummaryRequest":
        return cls(
            column_id=distribution.column_id,
            column_label=distribution.label,
            distribution=list(distribution.entries),
            total_valid=distribution.total_valid,
        )


@dataclass
class SummaryOutcome:
    """Result for one column: a real summary or the fallback."""
    column_id: str
    text: str
    ok: bool
    error: Optional[SummarizationError] = None


class SummarizationClient:
    """
    Client for the external text-generation service.

    This module handles:
    - Prompt construction from a column distribution
    - Low-temperature JSON completions with per-request timeouts
    - Strict schema decoding of the response
    - Descriptive-only content checks on the returned text
    - Concurrent fan-out over columns with fallback per failed column
    """

    def __init__(self, config: LLMConfig, client=None, enabled: bool = True):
        """
        Initialize the summarization client.

        Args:
            config: LLM configuration
            client: Optional pre-built async client exposing chat.completions.create
            enabled: When False no service is contacted and every column falls back
        """
        self.config = config
        self._client = client
        if not enabled:
            self._client = None
            logger.info("Summarization disabled. Column summaries will use the fallback text.")
        elif self._client is None:
            self._initialize_client()

    def _initialize_client(self):
        """Initialize the async OpenAI client."""
        self._client = create_async_client(self.config)
        if self._client is None:
            logger.warning("Column summaries will use the fallback text.")

    @property
    def available(self) -> bool:
        return self._client is not None

    async def summarize_all(self, requests: Sequence[SummaryRequest]) -> Dict[str, SummaryOutcome]:
        """
        Summarize all columns concurrently and wait for every result.

        Cancelling the awaiting task cancels every in-flight request.

        Args:
            requests: One request per column

        Returns:
            Outcome per column id, in request order
        """
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def run(request: SummaryRequest) -> SummaryOutcome:
            async with semaphore:
                try:
                    text = await self.summarize(request)
                    return SummaryOutcome(request.column_id, text, True)
                except SummarizationError as e:
                    logger.warning(
                        f"Summary for '{request.column_label}' unavailable ({e.reason}): {e}"
                    )
                    return SummaryOutcome(request.column_id, FALLBACK_SUMMARY, False, e)
                except Exception as e:
                    logger.exception(f"Unexpected failure summarizing '{request.column_label}'")
                    error = SummarizationError(
                        f"Unexpected failure: {e!r}", column_id=request.column_id
                    )
                    return SummaryOutcome(request.column_id, FALLBACK_SUMMARY, False, error)

        tasks = [asyncio.ensure_future(run(r)) for r in requests]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return {outcome.column_id: outcome for outcome in outcomes}

    async def summarize(self, request: SummaryRequest) -> str:
        """
        Summarize a single column.

        Raises:
            SummarizationError: timeout, auth/quota failure, schema or policy violation
        """
        if not self._client:
            raise SummarizationError(
                "Summarization service is not configured",
                column_id=request.column_id,
                reason="auth",
            )

        prompt = PromptTemplates.format_column_summary(
            column_id=request.column_id,
            column_label=request.column_label,
            entries=request.distribution,
            total_valid=request.total_valid,
            max_entries=self.config.max_entries_in_prompt,
        )

        attempts = max(1, self.config.retry_attempts)
        last_error: Optional[SummarizationError] = None

        for attempt in range(attempts):
            try:
                content = await asyncio.wait_for(
                    self._complete(prompt, request.column_id), timeout=self.config.timeout
                )
                payload = decode_summary(content, request.column_id)
                return enforce_descriptive(payload.summary, request, self.config)

            except asyncio.TimeoutError:
                last_error = SummarizationError(
                    f"Request timed out after {self.config.timeout}s",
                    column_id=request.column_id,
                    reason="timeout",
                )
            except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
                raise SummarizationError(
                    f"Service rejected credentials: {e}",
                    column_id=request.column_id,
                    reason="auth",
                ) from e
            except openai.RateLimitError as e:
                last_error = SummarizationError(
                    f"Rate limit or quota exceeded: {e}",
                    column_id=request.column_id,
                    reason="quota",
                )
            except openai.APITimeoutError:
                last_error = SummarizationError(
                    "Request timed out",
                    column_id=request.column_id,
                    reason="timeout",
                )
            except openai.APIConnectionError as e:
                last_error = SummarizationError(
                    f"Connection failed: {e}",
                    column_id=request.column_id,
                    reason="connection",
                )
            except openai.OpenAIError as e:
                raise SummarizationError(
                    f"Service error: {e}",
                    column_id=request.column_id,
                ) from e
            except SummarizationError as e:
                if e.reason != "schema":
                    raise
                last_error = e

            logger.debug(f"Summary attempt {attempt + 1} for {request.column_id} failed: {last_error}")
            if attempt < attempts - 1:
                await asyncio.sleep(self.config.retry_backoff * (2 ** attempt))  # Exponential backoff

        raise last_error

    async def _complete(self, prompt: str, column_id: str) -> Optional[str]:
        """Make one chat completion call."""
        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": PromptTemplates.SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            response_format={"type": "json_object"},
        )
        return extract_content(response, column_id)


def create_async_client(config: LLMConfig):
    """Build the async OpenAI client, or None when the service is unusable."""
    if config.provider != "openai":
        logger.warning(f"Unsupported LLM provider: {config.provider}")
        return None
    if not config.api_key:
        logger.warning("No OpenAI API key configured.")
        return None

    client = openai.AsyncOpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        max_retries=0,  # Retries are handled by the callers
    )
    logger.info(f"Initialized OpenAI client with model: {config.model}")
    return client


def extract_content(response, column_id: Optional[str] = None) -> Optional[str]:
    """
    Pull the message text out of a chat completion.

    Raises:
        SummarizationError: reason "schema" when the response has no message
    """
    choices = getattr(response, "choices", None)
    if not choices:
        raise SummarizationError("Response has no choices", column_id=column_id, reason="schema")

    message = getattr(choices[0], "message", None)
    if message is None:
        raise SummarizationError("Response choice has no message", column_id=column_id, reason="schema")
    return getattr(message, "content", None)


def decode_summary(content: Optional[str], column_id: str) -> ColumnSummaryPayload:
    """
    Validate the raw service answer against the summary schema.

    Raises:
        SummarizationError: reason "schema" for any shape mismatch
    """
    if not isinstance(content, str) or not content.strip():
        raise SummarizationError("Empty response", column_id=column_id, reason="schema")

    try:
        payload = ColumnSummaryPayload.model_validate_json(content)
    except ValidationError as e:
        raise SummarizationError(
            f"Response failed schema validation ({e.error_count()} errors)",
            column_id=column_id,
            reason="schema",
        ) from e

    if payload.column_id != column_id:
        raise SummarizationError(
            f"Response is for column '{payload.column_id}'",
            column_id=column_id,
            reason="schema",
        )
    return payload


def enforce_descriptive(text: str, request: SummaryRequest, config: LLMConfig) -> str:
    """
    Check that a summary is short, neutral and grounded in the request.

    Raises:
        SummarizationError: reason "policy"
    """
    summary = " ".join(text.split())

    def violation(message: str) -> SummarizationError:
        return SummarizationError(message, column_id=request.column_id, reason="policy")

    # Wording quoted from the question or its answers is not the summary's own voice
    own_words = strip_phrases(summary, [request.column_label] + [e.name for e in request.distribution])

    if SECOND_PERSON_PATTERN.search(own_words):
        raise violation("Summary addresses the reader")

    match = PRESCRIPTIVE_PATTERN.search(own_words)
    if match:
        raise violation(f"Summary uses prescriptive language ('{match.group(0)}')")

    sentences = count_sentences(own_words)
    if sentences > config.max_sentences:
        raise violation(f"Summary has {sentences} sentences (max {config.max_sentences})")

    if config.enforce_numeric_grounding:
        allowed = allowed_numbers(request)
        for token in NUMBER_PATTERN.findall(summary):
            if _to_number(token) not in allowed:
                raise violation(f"Summary mentions {token}, which is not in the data")

    return summary


def count_sentences(text: str) -> int:
    """Count sentences ending in ., ! or ? (decimals are not sentence ends)."""
    parts = [p for p in SENTENCE_END_PATTERN.split(text) if p.strip()]
    return len(parts)


def allowed_numbers(request: SummaryRequest) -> Set[float]:
    """Numbers a summary may mention for this request."""
    allowed = {float(request.total_valid), float(len(request.distribution)), 100.0}

    for entry in request.distribution:
        allowed.add(float(entry.count))
        allowed.add(round(entry.percentage, 1))
        allowed.add(float(round(entry.percentage)))

    for text in [request.column_label] + [e.name for e in request.distribution]:
        for token in NUMBER_PATTERN.findall(text):
            allowed.add(_to_number(token))

    return allowed


def _to_number(token: str) -> float:
    return round(float(token.replace(",", "")), 1)


def strip_phrases(text: str, phrases: Sequence[str]) -> str:
    """Remove whole-word occurrences of the given phrases (case-insensitive, longest first)."""
    cleaned = [" ".join(p.split()) for p in phrases]
    for phrase in sorted({p for p in cleaned if p}, key=len, reverse=True):
        text = re.sub(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", "", text, flags=re.IGNORECASE)
    return text
