from dataclasses import dataclass, field
from typing import FrozenSet

DEFAULT_RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ResiliencePolicy:
    """
    Retry and circuit breaker parameters for one protected upstream.

    Attributes:
        name: Name of the protected upstream, used for logs and metrics
        max_attempts: Total attempts including the first
        initial_backoff: Seconds to wait before the first retry
        backoff_multiplier: Exponential base between retries
        max_backoff: Ceiling for a single wait, in seconds
        retry_status_codes: Upstream HTTP statuses treated as transient
        retry_on_transport_error: Retry failures that produced no response
        failure_rate_threshold: Percentage of failed calls that opens the circuit
        sliding_window_size: Number of recent calls the failure rate covers
        minimum_number_of_calls: Calls required before the rate is evaluated
        wait_duration_in_open_state: Seconds the circuit stays open
        permitted_calls_in_half_open_state: Trial calls allowed when half open
    """

    name: str = "default"
    max_attempts: int = 3
    initial_backoff: float = 0.5
    backoff_multiplier: float = 2.0
    max_backoff: float = 5.0
    retry_status_codes: FrozenSet[int] = field(default=DEFAULT_RETRY_STATUS_CODES)
    retry_on_transport_error: bool = True
    failure_rate_threshold: float = 50.0
    sliding_window_size: int = 10
    minimum_number_of_calls: int = 5
    wait_duration_in_open_state: float = 30.0
    permitted_calls_in_half_open_state: int = 3

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0 < self.failure_rate_threshold <= 100:
            raise ValueError("failure_rate_threshold must be within (0, 100]")
        if self.sliding_window_size < 1:
            raise ValueError("sliding_window_size must be at least 1")
        if self.permitted_calls_in_half_open_state < 1:
            raise ValueError("permitted_calls_in_half_open_state must be at least 1")
