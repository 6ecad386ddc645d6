"""Retry policy for the durable queue."""

from dataclasses import dataclass

from invoice_delivery.config import Settings, settings


def compute_retry_delay(attempt: int, base_delay: float, backoff_type: str = "exponential") -> float:
    """Delay in seconds before retry number ``attempt`` (1-based).

    ``fixed`` always waits ``base_delay``; ``exponential`` doubles it per attempt.
    """
    attempt = max(1, attempt)
    if backoff_type == "fixed":
        return float(base_delay)
    return float(base_delay * 2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryPolicy:
    max_retry_attempts: int = 3
    retry_delay: float = 300
    backoff_type: str = "exponential"

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "RetryPolicy":
        config = config or settings
        return cls(
            max_retry_attempts=config.queue_max_retry_attempts,
            retry_delay=config.queue_retry_delay,
            backoff_type=config.queue_backoff_type,
        )

    @property
    def max_tries(self) -> int:
        """First attempt plus retries."""
        return self.max_retry_attempts + 1

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """Retry only retryable errors, and only while attempts remain."""
        if not getattr(error, "retryable", True):
            return False
        return attempt < self.max_tries

    def delay_for(self, attempt: int) -> float:
        return compute_retry_delay(attempt, self.retry_delay, self.backoff_type)
