"""
Prompt Templates for Column Summaries

Contains the prompts used to describe survey column distributions and to
answer questions about a session's aggregated data.
"""

from typing import List, Tuple
from dataclasses import dataclass

from surveylens.core.session_store import DistributionEntry


@dataclass
class PromptTemplates:
    """Collection of prompt templates for summarization."""

    # System prompt establishing the model's role
    SYSTEM_PROMPT = """You are a neutral survey data analyst.

Your task is to describe how answers to a single survey question are distributed.

Rules:
1. Describe only what the provided counts and percentages show
2. Write 2 to 3 short sentences in the third person
3. Never address the reader, never give advice, recommendations, judgments or predictions
4. Use phrases like "concentrated in", "distributed across", "a majority selected"
5. Only use numbers that appear in the provided data

Never invent values or numbers that are not in the data."""

    COLUMN_SUMMARY_PROMPT = """Describe the distribution of answers to the following survey question.

QUESTION: {column_label}
COLUMN ID: {column_id}
VALID ANSWERS: {total_valid}
DISTINCT VALUES: {distinct_count}

DISTRIBUTION (value: count, percentage):
{distribution_info}

Respond in JSON format:
{{
    "column_id": "{column_id}",
    "summary": "..."
}}"""

    @classmethod
    def format_column_summary(
        cls,
        column_id: str,
        column_label: str,
        entries: List[DistributionEntry],
        total_valid: int,
        max_entries: int = 25,
    ) -> str:
        """Format the column summary prompt."""
        shown = entries[:max_entries]
        distribution_info = "\n".join([
            f"- {e.name}: {e.count} ({e.percentage:.1f}%)"
            for e in shown
        ]) or "- (no answers)"

        if len(entries) > len(shown):
            distribution_info += f"\n- ... {len(entries) - len(shown)} less frequent values omitted"

        return cls.COLUMN_SUMMARY_PROMPT.format(
            column_id=column_id,
            column_label=column_label,
            total_valid=total_valid,
            distinct_count=len(entries),
            distribution_info=distribution_info,
        )

    # System prompt for the session research assistant
    ASSISTANT_SYSTEM_PROMPT = """You are a neutral academic research assistant for the survey dashboard "{session_title}".

Rules:
1. Maintain a neutral, academic tone and be concise
2. Answer strictly from the aggregated data below; say so when the data cannot answer a question
3. Never give advice or recommendations, and never predict outcomes for any individual
4. Mention that the data is aggregated and anonymous
5. Do not use emojis

RESPONSES: {participation_count}

ANSWER DISTRIBUTIONS (value(count)):
{distribution_info}

CROSS-TABULATIONS ("<question A> x <question B>": answer A -> answer B -> count):
{correlation_info}"""

    @classmethod
    def format_assistant_system(
        cls,
        session_title: str,
        participation_count: int,
        distributions: List[Tuple[str, List[str]]],
        correlation_json: str,
        max_chars: int = 5000,
    ) -> str:
        """Format the assistant's system prompt from a session's aggregates."""
        distribution_info = "\n".join([
            f"- {label}: {', '.join(values)}"
            for label, values in distributions
        ]) or "- (no chartable questions)"

        return cls.ASSISTANT_SYSTEM_PROMPT.format(
            session_title=session_title,
            participation_count=participation_count,
            distribution_info=distribution_info[:max_chars],
            correlation_info=correlation_json[:max_chars] or "{}",
        )
