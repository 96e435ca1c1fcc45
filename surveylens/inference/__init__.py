"""Inference modules for LLM-based column summaries and the research assistant."""

from surveylens.inference.summarizer import SummarizationClient, FALLBACK_SUMMARY
from surveylens.inference.assistant import ResearchAssistant, ChatTurn, AssistantReply
from surveylens.inference.prompts import PromptTemplates

__all__ = [
    "SummarizationClient",
    "ResearchAssistant",
    "ChatTurn",
    "AssistantReply",
    "PromptTemplates",
    "FALLBACK_SUMMARY",
]
