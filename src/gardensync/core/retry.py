"""
Retry logic with exponential backoff.

Used by the serialized local store around persistence calls and by the
remote mirror client around document store calls.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Type


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Delay before the first retry in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """
    max_attempts: int = 3
    initial_delay_ms: float = 100.0
    max_delay_ms: float = 10000.0
    backoff_multiplier: float = 2.0
    jitter: bool = False

    @classmethod
    def linear(cls, max_attempts: int, step_ms: float) -> "RetryConfig":
        """
        Build a config whose delays grow linearly (step, 2*step, 3*step...).

        This is the schedule the local store uses between persistence retries.
        """
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=step_ms,
            max_delay_ms=step_ms * max(max_attempts, 1),
            backoff_multiplier=1.0,
            jitter=False,
        )


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The final error if failed
        error_history: List of errors from each attempt
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[BaseException] = None
    error_history: List[str] = field(default_factory=list)

    def unwrap(self) -> Any:
        """Return the result, or raise the final error."""
        if self.success:
            return self.result
        raise self.error


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt.

    With ``backoff_multiplier`` of 1.0 the delay grows linearly with the
    attempt number; otherwise it grows exponentially.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    if config.backoff_multiplier == 1.0:
        delay_ms = config.initial_delay_ms * (attempt + 1)
    else:
        delay_ms = config.initial_delay_ms * (config.backoff_multiplier ** attempt)
    delay_ms = min(delay_ms, config.max_delay_ms)

    # ±25% random variation
    if config.jitter:
        jitter_factor = 0.75 + (random.random() * 0.5)
        delay_ms *= jitter_factor

    return delay_ms / 1000.0


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    give_up_on: Tuple[Type[BaseException], ...] = (),
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult:
    """
    Execute an operation with retry and backoff.

    Args:
        operation: Callable to execute (should take no arguments)
        config: Retry configuration
        retry_on: Tuple of exception types to retry on
        give_up_on: Exception types that are never retried, even when they
            are subclasses of something in ``retry_on``
        operation_name: Name for logging
        sleep: Sleep function (injectable for tests)

    Returns:
        RetryResult with success/failure info

    Example:
        >>> config = RetryConfig(max_attempts=3)
        >>> result = retry_with_backoff(lambda: store.get("k"), config)
        >>> if result.success:
        ...     print(f"Success after {result.attempts} attempts")
    """
    error_history: List[str] = []
    last_error: Optional[BaseException] = None

    for attempt in range(config.max_attempts):
        try:
            logger.debug(f"{operation_name}: attempt {attempt + 1}/{config.max_attempts}")
            result = operation()

            if attempt > 0:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")

            return RetryResult(
                success=True,
                result=result,
                attempts=attempt + 1,
                error_history=error_history,
            )

        except give_up_on as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            error_history.append(str(e))
            return RetryResult(
                success=False,
                attempts=attempt + 1,
                error=e,
                error_history=error_history,
            )

        except retry_on as e:
            last_error = e
            error_history.append(str(e))
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{config.max_attempts}: {e}"
            )

            # Don't sleep after the last attempt
            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.debug(f"Backing off for {delay:.3f}s before retry")
                sleep(delay)

        except Exception as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            error_history.append(str(e))
            return RetryResult(
                success=False,
                attempts=attempt + 1,
                error=e,
                error_history=error_history,
            )

    logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts")

    return RetryResult(
        success=False,
        attempts=config.max_attempts,
        error=last_error or Exception(f"Failed after {config.max_attempts} attempts"),
        error_history=error_history,
    )
