# replenisher/models/retry_policy_model.py
"""
Retry policy model for occurrence delivery.
"""

from pydantic import BaseModel, Field

from ..enums import BackoffStrategy


class RetryPolicy(BaseModel):
    """How many times an occurrence is delivered and how long to wait between tries."""

    attempts: int = Field(default=5, ge=1, description="Total delivery attempts")
    backoff_strategy: BackoffStrategy = Field(
        default=BackoffStrategy.EXPONENTIAL, description="Delay growth strategy"
    )
    base_delay_ms: int = Field(
        default=5000, ge=0, description="Delay before the first retry in milliseconds"
    )

    def delay_seconds(self, attempt: int) -> float:
        """
        Delay to wait after the given failed attempt (1-based).

        Exponential: base * 2^(attempt - 1). Fixed: base.
        """
        if self.backoff_strategy == BackoffStrategy.EXPONENTIAL:
            delay_ms = self.base_delay_ms * (2 ** (attempt - 1))
        else:
            delay_ms = self.base_delay_ms
        return delay_ms / 1000
