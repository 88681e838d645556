# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/utils/retry.py
import time
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ocne.errors import PollTimeoutError

log = logging.getLogger("ocne")

DEFAULT_POLL_TIMEOUT = 20 * 60
DEFAULT_POLL_DELAY = 5.0


class RetryError(RuntimeError):
    pass


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for idempotent operations.

    retries: number of attempts
    delay: seconds between attempts, multiplied by the attempt number
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    time.sleep(delay * attempt)
            raise RetryError(f"{fn.__name__} failed after {retries} retries: {last_exc}") from last_exc
        return wrapper
    return decorator


@dataclass(frozen=True)
class Poll:
    """
    Outcome of one polling attempt.

    done:  the condition holds; `value` is handed back to the caller
    fatal: stop polling now and raise `error`
    error: why the attempt did not succeed (kept for the timeout message)
    """

    done: bool = False
    fatal: bool = False
    error: Optional[BaseException] = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "Poll":
        return cls(done=True, value=value)

    @classmethod
    def again(cls, error: Optional[BaseException] = None) -> "Poll":
        return cls(error=error)

    @classmethod
    def fail(cls, error: BaseException) -> "Poll":
        return cls(fatal=True, error=error)


def linear_retry_timeout(
    predicate: Callable[[], Poll],
    *,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    delay: float = DEFAULT_POLL_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """
    Call *predicate* every *delay* seconds until it reports done or fatal,
    or until *timeout* seconds have passed.
    """
    deadline = clock() + timeout
    last: Optional[BaseException] = None
    while True:
        result = predicate()
        if result.done:
            return result.value
        if result.fatal:
            if result.error is None:
                raise RuntimeError("polling predicate failed without an error")
            raise result.error
        last = result.error
        if clock() + delay > deadline:
            break
        sleep(delay)

    msg = f"timed out after {timeout:.0f}s"
    if last is not None:
        msg = f"{msg}: {last}"
    raise PollTimeoutError(msg) from last
