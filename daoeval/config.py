"""Scoring and LLM configuration.

Both are frozen values built once and passed in; nothing here is a
module-level mutable singleton.
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

CRITERIA: tuple[str, ...] = (
    "strategicAlignment",
    "feasibility",
    "teamCapability",
    "financialReasonableness",
    "roiPotential",
    "riskLevel",
    "milestoneClarity",
    "transparency",
)

DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "strategicAlignment": 0.15,
    "feasibility": 0.20,
    "teamCapability": 0.15,
    "financialReasonableness": 0.15,
    "roiPotential": 0.10,
    "riskLevel": 0.10,
    "milestoneClarity": 0.10,
    "transparency": 0.05,
})

CRITICAL_CRITERIA: tuple[str, ...] = ("feasibility", "teamCapability", "financialReasonableness")


@dataclass(frozen=True)
class ScoringConfig:
    weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    strongly_approve: float = 80
    approve: float = 60
    review: float = 40
    reject: float = 20
    missing_info_threshold: int = 3
    low_score_threshold: float = 30
    critical_criteria: tuple[str, ...] = CRITICAL_CRITERIA

    def __post_init__(self) -> None:
        missing = [c for c in CRITERIA if c not in self.weights]
        if missing:
            raise ValueError(f"Missing weights for criteria: {', '.join(missing)}")
        unknown = [k for k in self.weights if k not in CRITERIA]
        if unknown:
            raise ValueError(f"Unknown criteria in weights: {', '.join(unknown)}")
        total = math.fsum(self.weights.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Weights must sum to 1.0, got {total}")
        if not (self.strongly_approve > self.approve > self.review > self.reject):
            raise ValueError("Recommendation thresholds must be strictly decreasing")
        # freeze a caller-supplied dict
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


# Default models per provider
_DEFAULT_MODELS = {
    "groq": "llama-3.3-70b-versatile",
    "openai": "gpt-4o-mini",
    "openai_compatible": "gpt-4o-mini",
    "anthropic": "claude-haiku-4-5-20251001",
}

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


@dataclass(frozen=True)
class LLMSettings:
    provider: str = "groq"
    model: str = _DEFAULT_MODELS["groq"]
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.3
    max_tokens: int = 4000
    max_attempts: int = 3
    retry_delay: float = 2.0
    batch_delay: float = 1.0

    @classmethod
    def from_env(cls) -> LLMSettings:
        provider = os.environ.get("LLM_PROVIDER", "groq")
        if provider not in _DEFAULT_MODELS:
            raise ValueError(f"Unknown LLM provider: {provider!r}")
        key_var = {
            "groq": "GROQ_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
        }.get(provider, "OPENAI_API_KEY")
        base_url = os.environ.get("OPENAI_BASE_URL")
        if provider == "groq":
            base_url = GROQ_BASE_URL
        return cls(
            provider=provider,
            model=os.environ.get("LLM_MODEL") or _DEFAULT_MODELS[provider],
            api_key=os.environ.get(key_var),
            base_url=base_url,
            temperature=float(os.environ.get("LLM_TEMPERATURE", "0.3")),
            max_tokens=int(os.environ.get("LLM_MAX_TOKENS", "4000")),
            max_attempts=int(os.environ.get("LLM_MAX_ATTEMPTS", "3")),
            retry_delay=float(os.environ.get("LLM_RETRY_DELAY", "2.0")),
            batch_delay=float(os.environ.get("BATCH_DELAY", "1.0")),
        )


DATA_DIR = Path(__file__).parent / "data"


def database_path() -> Path:
    override = os.environ.get("DAOEVAL_DB", "").strip()
    if override:
        return Path(override).expanduser()
    return DATA_DIR / "daoeval.db"


DEFAULT_SCORING = ScoringConfig()
