"""
Research Assistant

Answers free-form questions about one session. Answers are grounded on the
session's per-column distributions and its cross-tabulations, and are
checked for advice and predictions before they are returned.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import openai

from surveylens.config import LLMConfig
from surveylens.core.distribution import DistributionEngine
from surveylens.core.errors import SummarizationError
from surveylens.core.session_store import Session
from surveylens.inference.prompts import PromptTemplates
from surveylens.inference.summarizer import (
    PRESCRIPTIVE_PATTERN,
    create_async_client,
    extract_content,
    strip_phrases,
)

logger = logging.getLogger(__name__)

ASSISTANT_UNAVAILABLE = "The research assistant is unavailable right now."
ASSISTANT_DECLINED = "That question cannot be answered descriptively from the aggregated data."

ROLES = ("user", "assistant")


@dataclass
class ChatTurn:
    """One earlier message of the conversation."""
    role: str  # "user" or "assistant"
    content: str


@dataclass
class AssistantReply:
    """The assistant's answer, or a fixed reply when none could be produced."""
    text: str
    ok: bool
    error: Optional[SummarizationError] = None


class ResearchAssistant:
    """
    Conversational companion for a single session.

    The system prompt carries the top values of the first chartable
    questions and the session's correlation map, so cross-tab questions
    are answered from precomputed counts. Requests are not retried.
    """

    def __init__(self, config: LLMConfig, client=None, enabled: bool = True):
        """
        Initialize the assistant.

        Args:
            config: LLM configuration
            client: Optional pre-built async client exposing chat.completions.create
            enabled: When False every question gets the unavailable reply
        """
        self.config = config
        self.engine = DistributionEngine()
        self._client = client
        if not enabled:
            self._client = None
        elif self._client is None:
            self._client = create_async_client(config)

    @property
    def available(self) -> bool:
        return self._client is not None

    def build_context(self, session: Session) -> str:
        """System prompt describing the session's aggregated answers."""
        distributions = []
        for column in session.visualizable_columns[:self.config.assistant_max_columns]:
            dist = self.engine.compute(session.responses, column)
            distributions.append(
                (column.label, DistributionEngine.top_values(dist, self.config.assistant_max_values))
            )

        return PromptTemplates.format_assistant_system(
            session_title=session.title,
            participation_count=session.participation_count,
            distributions=distributions,
            correlation_json=json.dumps(session.correlation_data, ensure_ascii=False),
            max_chars=self.config.assistant_context_chars,
        )

    async def ask(
        self,
        session: Session,
        question: str,
        history: Optional[Sequence[ChatTurn]] = None,
    ) -> AssistantReply:
        """
        Answer a question about a session.

        Args:
            session: Session the question is about
            question: The user's question
            history: Earlier turns of the conversation, oldest first

        Returns:
            AssistantReply (ok=False with a fixed text on any failure)

        Raises:
            ValueError: empty question or unknown role in the history
        """
        question = question.strip()
        if not question:
            raise ValueError("Question is empty")

        turns = list(history or [])
        for turn in turns:
            if turn.role not in ROLES:
                raise ValueError(f"Unknown chat role '{turn.role}'")

        if not self._client:
            logger.warning("Research assistant is not configured")
            error = SummarizationError("Research assistant is not configured", reason="auth")
            return AssistantReply(ASSISTANT_UNAVAILABLE, False, error)

        messages = [{"role": "system", "content": self.build_context(session)}]
        messages += [{"role": t.role, "content": t.content} for t in turns]
        messages.append({"role": "user", "content": question})

        try:
            content = await asyncio.wait_for(self._complete(messages), timeout=self.config.timeout)
            answer = check_answer(content, quoted_phrases(session) + [question])
        except asyncio.TimeoutError:
            error = SummarizationError(f"Request timed out after {self.config.timeout}s", reason="timeout")
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            error = SummarizationError(f"Service rejected credentials: {e}", reason="auth")
        except openai.RateLimitError as e:
            error = SummarizationError(f"Rate limit or quota exceeded: {e}", reason="quota")
        except openai.OpenAIError as e:
            error = SummarizationError(f"Service error: {e}")
        except SummarizationError as e:
            error = e
        else:
            return AssistantReply(answer, True)

        logger.warning(f"Research assistant reply unavailable ({error.reason}): {error}")
        text = ASSISTANT_DECLINED if error.reason == "policy" else ASSISTANT_UNAVAILABLE
        return AssistantReply(text, False, error)

    async def _complete(self, messages: List[Dict[str, str]]) -> Optional[str]:
        """Make one chat completion call."""
        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=messages,
            temperature=self.config.assistant_temperature,
            max_tokens=self.config.max_tokens,
        )
        return extract_content(response)


def quoted_phrases(session: Session) -> List[str]:
    """Question labels and answer values an answer may quote verbatim."""
    phrases = [c.label for c in session.columns]
    for column in session.visualizable_columns:
        phrases.extend({r.get(column.id, "") for r in session.responses})
    return phrases


def check_answer(content: Optional[str], quoted: Sequence[str]) -> str:
    """
    Reject empty answers and answers that give advice or predictions.

    Raises:
        SummarizationError: reason "schema" or "policy"
    """
    if not isinstance(content, str) or not content.strip():
        raise SummarizationError("Empty response", reason="schema")

    answer = content.strip()
    match = PRESCRIPTIVE_PATTERN.search(strip_phrases(" ".join(answer.split()), quoted))
    if match:
        raise SummarizationError(
            f"Answer uses prescriptive language ('{match.group(0)}')", reason="policy"
        )
    return answer
