import logging
import random
import time
from typing import Callable, TypeVar


T = TypeVar("T")

_logger = logging.getLogger(__name__)


def retry_with_backoff(
    fn: Callable[[], T],
    retries: int = 3,
    backoff_in_seconds: float = 1.0,
    give_up: tuple[type[BaseException], ...] = (),
) -> T:
    attempt = 0
    while True:
        try:
            return fn()
        except give_up:
            raise
        except Exception as exc:
            if attempt >= retries:
                raise
            sleep = backoff_in_seconds * 2**attempt + random.uniform(0, 1)
            _logger.warning("Attempt %s failed (%s), retrying in %.1fs", attempt + 1, exc, sleep)
            time.sleep(sleep)
            attempt += 1
