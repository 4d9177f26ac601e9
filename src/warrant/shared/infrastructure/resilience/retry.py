"""Retry Resilience Pattern."""

from dataclasses import dataclass

from warrant.shared.domain.base_model import BaseDomainModel


@dataclass(frozen=True)
class RetryPolicy(BaseDomainModel):
    """
    Configuration for step retry behavior.

    max_attempts counts the first run, so 1 means no retries. Delays grow as
    initial_delay * exponential_base ** (attempt - 1), capped at max_delay.
    No jitter: retry timing has to be reproducible in reports and tests.
    """

    max_attempts: int = 1
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    retry_on_timeout: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")

    @property
    def retries_enabled(self) -> bool:
        return self.max_attempts > 1

    def delay_for(self, attempt: int) -> float:
        """Backoff to wait after failed attempt number `attempt` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        return min(
            self.initial_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay,
        )


NO_RETRY = RetryPolicy()
