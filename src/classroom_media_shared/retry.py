"""Bounded retry with exponential backoff, shared by every queue backend."""

from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SEC = 2.0


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts total runs per job; after the n-th failed run the job waits
    base_delay_sec * 2 ** (n - 1) seconds (2s, 4s, 8s, ...) before the next one.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_sec: float = DEFAULT_BACKOFF_BASE_SEC

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_sec < 0:
            raise ValueError("base_delay_sec must be >= 0")

    def should_retry(self, attempts_made: int) -> bool:
        """True if another run is allowed after attempts_made completed runs."""
        return attempts_made < self.max_attempts

    def delay_for(self, attempts_made: int) -> float:
        """Delay before the next run, given how many runs have already failed."""
        if attempts_made < 1:
            return 0.0
        return self.base_delay_sec * (2 ** (attempts_made - 1))
