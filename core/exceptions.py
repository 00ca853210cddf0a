"""
Core Module - Exceptions and Error Codes.

============================================================
RESPONSIBILITY
============================================================
Defines the exception hierarchy and error-code registry for
the scoring subsystem.

- Data problems (missing samples, thin baselines) degrade a
  single component; they are raised only inside input
  resolution and recorded as a component's degraded reason
- Infrastructure problems (durable tier unreachable) are
  retryable and never fatal
- Recompute races are internal and resolved by superseding

============================================================
EXCEPTION HIERARCHY
============================================================
ScoringException (base)
├── ConfigurationError
│   └── InvalidConfigError
├── DataError
│   ├── InsufficientBaseline
│   ├── MissingSample
│   └── SampleValidationError
├── InfrastructureError
│   └── DurableWriteFailed
└── CoordinationError
    ├── ConcurrentRecomputeRace
    └── StateTransitionError

============================================================
"""

from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Informational; a single component degraded."""

    MEDIUM = "medium"
    """Requires attention; freshness of a key is affected."""

    HIGH = "high"
    """Serious; configuration or persistence unusable."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Handled locally by degrading the result."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    DATA = "DATA"
    """Input data absent or unusable."""

    INFRASTRUCTURE = "INFRASTRUCTURE"
    """Storage or other I/O failure."""

    COORDINATION = "COORDINATION"
    """Recompute scheduling conflict."""

    CONFIGURATION = "CONFIGURATION"
    """Invalid configuration."""


@dataclass
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    is_retryable: bool
    """Whether this error is retryable."""

    description: str
    """Human-readable description."""

    recommended_action: str
    """Recommended action to take."""


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    "INSUFFICIENT_BASELINE": ErrorCodeInfo(
        code="INSUFFICIENT_BASELINE",
        category=ErrorCategory.DATA,
        is_retryable=False,
        description="Baseline window has fewer samples than the coverage threshold",
        recommended_action="Component scored 0 and flagged incomplete",
    ),
    "MISSING_SAMPLE": ErrorCodeInfo(
        code="MISSING_SAMPLE",
        category=ErrorCategory.DATA,
        is_retryable=False,
        description="Required metric has no sample for the day",
        recommended_action="Component scored 0 and flagged incomplete",
    ),
    "INVALID_SAMPLE": ErrorCodeInfo(
        code="INVALID_SAMPLE",
        category=ErrorCategory.DATA,
        is_retryable=False,
        description="Sample value outside the metric's valid domain",
        recommended_action="Sample ignored",
    ),
    "DURABLE_WRITE_FAILED": ErrorCodeInfo(
        code="DURABLE_WRITE_FAILED",
        category=ErrorCategory.INFRASTRUCTURE,
        is_retryable=True,
        description="Write to the durable score tier failed",
        recommended_action="Retry with backoff; in-memory value stays authoritative",
    ),
    "CONCURRENT_RECOMPUTE_RACE": ErrorCodeInfo(
        code="CONCURRENT_RECOMPUTE_RACE",
        category=ErrorCategory.COORDINATION,
        is_retryable=True,
        description="Inputs changed while a recompute was in flight",
        recommended_action="Discard result and recompute",
    ),
    "INVALID_STATE_TRANSITION": ErrorCodeInfo(
        code="INVALID_STATE_TRANSITION",
        category=ErrorCategory.COORDINATION,
        is_retryable=False,
        description="Key state machine rejected a transition",
        recommended_action="Investigate coordinator bookkeeping",
    ),
    "INVALID_CONFIG": ErrorCodeInfo(
        code="INVALID_CONFIG",
        category=ErrorCategory.CONFIGURATION,
        is_retryable=False,
        description="Configuration value is invalid",
        recommended_action="Fix configuration and restart",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Unknown codes map to a non-retryable infrastructure error.
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INFRASTRUCTURE,
        is_retryable=False,
        description=f"Unknown error: {code}",
        recommended_action="Investigate error",
    ))


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_info(code).is_retryable


RETRYABLE_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.is_retryable
}


# ============================================================
# BASE EXCEPTION
# ============================================================

class ScoringException(Exception):
    """
    Base exception for all scoring subsystem errors.

    All exceptions carry:
    - code: registry key in ERROR_CODES
    - severity: for log level selection
    - context: for debugging
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    code: str = "SCORING_ERROR"
    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_retryable(self) -> bool:
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(ScoringException):
    """Error in configuration."""

    code = "INVALID_CONFIG"
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            context={"config_key": key, "actual_value": str(value)[:100], "reason": reason},
        )
        self.key = key


# ============================================================
# DATA ERRORS
# ============================================================

class DataError(ScoringException):
    """Base class for input data problems. Always degrades, never fatal."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.RECOVERABLE


class InsufficientBaseline(DataError):
    """Baseline window under-covered."""

    code = "INSUFFICIENT_BASELINE"

    def __init__(self, metric: str, sample_count: int = 0, min_coverage: int = 0):
        super().__init__(
            message=(
                f"Baseline for {metric} has {sample_count} samples, "
                f"needs {min_coverage}"
            ),
            context={
                "metric": metric,
                "sample_count": sample_count,
                "min_coverage": min_coverage,
            },
        )
        self.metric = metric


class MissingSample(DataError):
    """A required metric has no sample for the day."""

    code = "MISSING_SAMPLE"

    def __init__(self, metric: str, day: Optional[str] = None):
        super().__init__(
            message=f"No {metric} sample for {day or 'day'}",
            context={"metric": metric, "day": day},
        )
        self.metric = metric


class SampleValidationError(DataError):
    """Sample value outside its metric's domain."""

    code = "INVALID_SAMPLE"

    def __init__(self, metric: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid {metric} sample {value}: {reason}",
            context={"metric": metric, "value": str(value)[:100], "reason": reason},
        )


# ============================================================
# INFRASTRUCTURE ERRORS
# ============================================================

class InfrastructureError(ScoringException):
    """Base class for storage and I/O failures."""

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.TRANSIENT


class DurableWriteFailed(InfrastructureError):
    """Durable tier write failed after retries."""

    code = "DURABLE_WRITE_FAILED"

    def __init__(self, key: str, attempts: int, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Durable write for {key} failed after {attempts} attempt(s)",
            context={"key": key, "attempts": attempts},
            cause=cause,
        )
        self.key = key
        self.attempts = attempts


# ============================================================
# COORDINATION ERRORS
# ============================================================

class CoordinationError(ScoringException):
    """Base class for recompute scheduling conflicts."""

    default_severity = Severity.LOW


class ConcurrentRecomputeRace(CoordinationError):
    """Inputs changed while a recompute was in flight."""

    code = "CONCURRENT_RECOMPUTE_RACE"
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, key: str, started_generation: int, current_generation: int):
        super().__init__(
            message=(
                f"Recompute for {key} superseded "
                f"(generation {started_generation} -> {current_generation})"
            ),
            context={
                "key": key,
                "started_generation": started_generation,
                "current_generation": current_generation,
            },
        )


class StateTransitionError(CoordinationError):
    """Invalid key state transition."""

    code = "INVALID_STATE_TRANSITION"
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, key: str, from_state: str, to_state: str, reason: str = ""):
        super().__init__(
            message=f"Cannot transition {key} from {from_state} to {to_state}: {reason}",
            context={"key": key, "from_state": from_state, "to_state": to_state},
        )


__all__ = [
    "Severity",
    "ErrorClassification",
    "ErrorCategory",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "RETRYABLE_ERROR_CODES",
    "get_error_info",
    "is_retryable",
    "ScoringException",
    "ConfigurationError",
    "InvalidConfigError",
    "DataError",
    "InsufficientBaseline",
    "MissingSample",
    "SampleValidationError",
    "InfrastructureError",
    "DurableWriteFailed",
    "CoordinationError",
    "ConcurrentRecomputeRace",
    "StateTransitionError",
]
