"""
JOSHUA Configuration — pydantic-settings based.

All settings are read from environment variables or .env file.
Fails fast at startup if required values (ANTHROPIC_API_KEY) are missing.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application-wide settings sourced from environment variables."""

    # ── Required ──
    anthropic_api_key: str = Field(..., description="API key for the reasoning service")

    # ── Reasoning service ──
    reasoning_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model identifier sent with every request",
    )
    reasoning_base_url: str = Field(
        default="https://api.anthropic.com/v1", description="Reasoning service base URL"
    )
    reasoning_api_version: str = Field(
        default="2023-06-01", description="Value of the anthropic-version header"
    )
    llm_timeout: float = Field(default=180.0, description="Request timeout in seconds")
    llm_max_tokens: int = Field(default=8000, description="max_tokens per request")
    llm_temperature: float = Field(
        default=0.2, description="Temperature used in single-analysis mode"
    )
    llm_temperature_min: float = Field(default=0.1, description="Lowest ensemble temperature")
    llm_temperature_max: float = Field(default=0.3, description="Highest ensemble temperature")

    # ── Rate limiting ──
    requests_per_minute: int = Field(default=50, description="Request budget per minute")
    tokens_per_minute: int = Field(default=40_000, description="Token budget per minute")

    # ── Retry ──
    llm_max_retries: int = Field(default=3, description="Max retries for retryable errors")
    retry_base_delay: float = Field(default=2.0, description="Backoff base delay in seconds")
    retry_max_delay: float = Field(default=60.0, description="Backoff delay cap in seconds")

    # ── Circuit breaker ──
    breaker_failure_threshold: int = Field(
        default=5, description="Consecutive failed calls before the breaker opens"
    )
    breaker_recovery_timeout: float = Field(
        default=60.0, description="Seconds the breaker stays open before half-open"
    )
    breaker_success_threshold: int = Field(
        default=2, description="Half-open successes needed to close the breaker"
    )

    # ── Cost accounting (USD per million tokens) ──
    input_cost_per_mtok: float = Field(default=3.0)
    output_cost_per_mtok: float = Field(default=15.0)

    # ── Prompt ──
    prompt_max_chars: int = Field(
        default=60_000, description="Size budget for the user prompt in characters"
    )
    evidence_excerpt_chars: int = Field(
        default=500, description="Characters of each evidence item quoted in the prompt"
    )

    # ── Consensus ──
    consensus_analyses: int = Field(
        default=3, description="Independent analyses per cycle (1 = single mode)"
    )
    max_divergence_seconds: int = Field(
        default=60, description="Spread above which the ensemble is flagged divergent"
    )
    dedup_similarity: float = Field(
        default=0.85, description="Similarity at which two developments are merged"
    )

    # ── Scoring ──
    prior_strength: float = Field(default=0.3, description="Bayesian prior strength")
    baseline_seconds: int = Field(
        default=89, description="Historical baseline used when no history is supplied"
    )
    monte_carlo_iterations: int = Field(default=10_000)
    perturbation_scale: float = Field(
        default=0.2, description="Max perturbation at zero confidence"
    )
    trend_threshold_seconds: float = Field(
        default=0.5,
        description="Seconds change separating 'stable' from a directional trend",
    )

    # ── Cycle ──
    assessment_timeout: float = Field(
        default=600.0, description="Wall-clock budget for one assessment cycle"
    )

    # ── Server ──
    cors_origins: list[str] = Field(
        default=["*"], description="Allowed CORS origins"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton instance — imported by other modules
settings = Settings()
