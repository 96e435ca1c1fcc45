"""
SurveyLens - Survey Ingestion & Structural Analysis

Turns spreadsheet-exported survey data into descriptive, shareable
sessions: column classification, frequency breakdowns, cross-tabulations
and short neutral summaries of every chartable question.
"""

__version__ = "1.0.0"
__author__ = "SurveyLens Team"

from surveylens.config import SurveyLensConfig
from surveylens.core.registry import SessionRegistry
from surveylens.core.session_store import Session

__all__ = ["SurveyLensConfig", "SessionRegistry", "Session", "__version__"]
