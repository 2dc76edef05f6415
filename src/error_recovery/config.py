"""
Error handling configuration with per-category overrides and built-in defaults
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .models import ErrorCategory, ErrorHandlingStrategy


DEFAULT_STRATEGIES: Dict[ErrorCategory, ErrorHandlingStrategy] = {
    ErrorCategory.AUTHENTICATION: ErrorHandlingStrategy.RETRY,
    ErrorCategory.NETWORK: ErrorHandlingStrategy.CIRCUIT_BREAKER,
    ErrorCategory.TIMEOUT: ErrorHandlingStrategy.CIRCUIT_BREAKER,
    ErrorCategory.VALIDATION: ErrorHandlingStrategy.LOG,
    ErrorCategory.UNKNOWN: ErrorHandlingStrategy.ESCALATE,
}

DEFAULT_MAX_RETRIES: Dict[ErrorCategory, int] = {
    ErrorCategory.AUTHENTICATION: 2,
    ErrorCategory.NETWORK: 3,
    ErrorCategory.TIMEOUT: 3,
    ErrorCategory.VALIDATION: 0,
}

# Base delays in seconds
DEFAULT_RETRY_DELAYS: Dict[ErrorCategory, float] = {
    ErrorCategory.AUTHENTICATION: 2.0,
    ErrorCategory.NETWORK: 1.0,
    ErrorCategory.TIMEOUT: 1.0,
}

FALLBACK_STRATEGY = ErrorHandlingStrategy.RETRY
FALLBACK_MAX_RETRIES = 1
FALLBACK_RETRY_DELAY = 0.5


@dataclass(frozen=True)
class ErrorHandlingConfig:
    """Configuration for error handling, resolved per category"""
    strategies: Mapping[ErrorCategory, ErrorHandlingStrategy] = field(default_factory=dict)
    max_retries: Mapping[ErrorCategory, int] = field(default_factory=dict)
    retry_delays: Mapping[ErrorCategory, float] = field(default_factory=dict)

    enable_circuit_breaker: bool = True
    circuit_breaker_threshold: int = 5          # Consecutive failures before opening
    circuit_breaker_timeout: float = 300.0      # Seconds before a probe is admitted
    half_open_single_probe: bool = False        # Admit one in-flight probe while half-open

    enable_auto_recovery: bool = True
    auto_recovery_interval: float = 30.0        # Seconds between sweeps
    auto_recovery_error_threshold: int = 10     # Errors since last recovery that trigger a sweep recovery
    recovery_cooldown: float = 300.0            # Seconds a client stays marked in recovery

    history_limit: int = 1000                   # Records kept per client
    retry_counter_ttl: float = 3600.0           # Seconds before an idle retry counter expires

    def get_strategy(self, category: ErrorCategory) -> ErrorHandlingStrategy:
        if category in self.strategies:
            return self.strategies[category]
        return DEFAULT_STRATEGIES.get(category, FALLBACK_STRATEGY)

    def get_max_retries(self, category: ErrorCategory) -> int:
        if category in self.max_retries:
            return self.max_retries[category]
        return DEFAULT_MAX_RETRIES.get(category, FALLBACK_MAX_RETRIES)

    def get_retry_delay(self, category: ErrorCategory) -> float:
        """Base retry delay in seconds"""
        if category in self.retry_delays:
            return self.retry_delays[category]
        return DEFAULT_RETRY_DELAYS.get(category, FALLBACK_RETRY_DELAY)

    def circuit_breaker_categories(self) -> List[ErrorCategory]:
        """Categories that get a circuit breaker at handler construction"""
        if not self.enable_circuit_breaker:
            return []
        return [
            category for category in ErrorCategory
            if self.get_strategy(category) == ErrorHandlingStrategy.CIRCUIT_BREAKER
        ]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorHandlingConfig":
        """
        Build a config from plain mapping data, e.g. parsed JSON or YAML.

        Category and strategy keys are given by their string values and
        delays in seconds. Unknown names raise ValueError.
        """
        options = dict(data)
        strategies = {
            ErrorCategory(category): ErrorHandlingStrategy(strategy)
            for category, strategy in options.pop("strategies", {}).items()
        }
        max_retries = {
            ErrorCategory(category): int(value)
            for category, value in options.pop("max_retries", {}).items()
        }
        retry_delays = {
            ErrorCategory(category): float(value)
            for category, value in options.pop("retry_delays", {}).items()
        }

        known_fields = set(cls.__dataclass_fields__)
        unknown = set(options) - known_fields
        if unknown:
            raise ValueError(f"Unknown error handling options: {', '.join(sorted(unknown))}")

        return cls(
            strategies=strategies,
            max_retries=max_retries,
            retry_delays=retry_delays,
            **options
        )
