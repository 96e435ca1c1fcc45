"""
Configuration management for SurveyLens.

Handles classifier thresholds, correlation limits, LLM settings
and registry storage locations.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import os
import yaml


@dataclass
class ClassifierConfig:
    """Column classification thresholds."""
    timestamp_marker: str = "timestamp"  # Headers containing this are dropped
    identifier_ratio: float = 0.8  # unique/total above this = likely identifier
    identifier_min_rows: int = 5  # Identifier rule only applies above this many values
    free_text_length: float = 100.0  # Average length above this = free text
    max_categories: int = 50  # Too many categories to chart legibly
    email_sample_size: int = 20  # Values sampled for the email check
    numeric_min_unique: int = 10  # Type-aware: numeric needs more distinct values than this


@dataclass
class CorrelationConfig:
    """Cross-tabulation settings."""
    max_columns: int = 8  # Caps pairs at K*(K-1)/2
    unknown_label: str = "Unknown"


@dataclass
class LLMConfig:
    """LLM configuration for the summarization client."""
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.2  # Lower for more deterministic outputs
    max_tokens: int = 300
    timeout: float = 30.0
    retry_attempts: int = 3
    retry_backoff: float = 1.0  # Seconds, doubled per attempt
    max_sentences: int = 3
    max_concurrency: int = 8  # Simultaneous in-flight column requests
    enforce_numeric_grounding: bool = True
    max_entries_in_prompt: int = 25

    # Research assistant
    assistant_temperature: float = 0.3
    assistant_max_columns: int = 15  # Chartable questions described in the context
    assistant_max_values: int = 10  # Top values listed per question
    assistant_context_chars: int = 5000

    def __post_init__(self):
        if not self.api_key:
            self.api_key = os.environ.get("OPENAI_API_KEY")


@dataclass
class RegistryConfig:
    """Session registry storage."""
    storage_dir: str = "./.surveylens"
    seed_path: Optional[str] = None  # JSON list of baseline sessions


@dataclass
class SurveyLensConfig:
    """Main configuration container."""
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    # Processing options
    type_aware_classification: bool = False
    verbose: bool = False

    @classmethod
    def from_yaml(cls, path: str) -> "SurveyLensConfig":
        """Load configuration from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a mapping: {path}")
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "SurveyLensConfig":
        """Create config from dictionary."""
        return cls(
            classifier=ClassifierConfig(**data.get("classifier", {})),
            correlation=CorrelationConfig(**data.get("correlation", {})),
            llm=LLMConfig(**data.get("llm", {})),
            registry=RegistryConfig(**data.get("registry", {})),
            type_aware_classification=data.get("type_aware_classification", False),
            verbose=data.get("verbose", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary. The API key is never exported."""
        return {
            "classifier": {
                "identifier_ratio": self.classifier.identifier_ratio,
                "identifier_min_rows": self.classifier.identifier_min_rows,
                "free_text_length": self.classifier.free_text_length,
                "max_categories": self.classifier.max_categories,
            },
            "correlation": {
                "max_columns": self.correlation.max_columns,
            },
            "llm": {
                "provider": self.llm.provider,
                "model": self.llm.model,
                "temperature": self.llm.temperature,
                "timeout": self.llm.timeout,
            },
            "registry": {
                "storage_dir": self.registry.storage_dir,
                "seed_path": self.registry.seed_path,
            },
            "type_aware_classification": self.type_aware_classification,
        }


def create_default_config(
    storage_dir: str = "./.surveylens",
    seed_path: Optional[str] = None,
    model: Optional[str] = None,
) -> SurveyLensConfig:
    """Factory function to create a default configuration."""
    llm = LLMConfig()
    if model:
        llm.model = model

    return SurveyLensConfig(
        llm=llm,
        registry=RegistryConfig(storage_dir=storage_dir, seed_path=seed_path),
    )
