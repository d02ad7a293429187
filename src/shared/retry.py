"""Bounded retry with a fixed pause between attempts."""

import time
from typing import Callable, TypeVar, Optional, Type, Tuple

from domain.exceptions import RetryExhaustedError
from shared.logging import get_logger
from shared.types import SleepFunc

T = TypeVar('T')

logger = get_logger(__name__)


class RetryStrategy:
    """
    Call a function until it succeeds or ``max_attempts`` is reached.

    Only exceptions listed in ``exceptions`` are retried; anything else
    propagates on the first occurrence. When every attempt fails,
    ``RetryExhaustedError`` is raised from the last error.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay: float = 1.0,
        exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: SleepFunc = time.sleep,
        description: str = "operation"
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay = delay
        self.exceptions = exceptions
        self.description = description
        self._sleep = sleep

    def execute(
        self,
        func: Callable[..., T],
        *args,
        **kwargs
    ) -> T:
        """
        Execute a function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Function result

        Raises:
            RetryExhaustedError: If all attempts fail
        """
        last_exception: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.exceptions as e:
                last_exception = e

                if attempt == self.max_attempts:
                    break

                logger.info(
                    f"{self.description} failed ({e}), "
                    f"retrying in {self.delay:g}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                self._sleep(self.delay)

        raise RetryExhaustedError(
            f"{self.description} failed after {self.max_attempts} attempts: {last_exception}",
            attempts=self.max_attempts,
            last_error=last_exception
        ) from last_exception
