import asyncio
import random

from ..config import PRICE_FETCH_BASE_DELAY, PRICE_FETCH_MAX_DELAY, PRICE_FETCH_MAX_RETRIES

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class HttpRetryPolicy:
    def __init__(
        self,
        max_retries=PRICE_FETCH_MAX_RETRIES,
        base_delay=PRICE_FETCH_BASE_DELAY,
        max_delay=PRICE_FETCH_MAX_DELAY,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def should_retry(self, attempt, status_code=None):
        if attempt >= self.max_retries:
            return False
        return status_code is None or status_code in RETRY_STATUS_CODES

    def delay_for(self, attempt, retry_after=None):
        if retry_after:
            try:
                return min(self.max_delay, max(0.0, float(retry_after)))
            except (TypeError, ValueError):
                pass
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        delay += random.uniform(0, delay * 0.2)
        return delay

    async def wait_async(self, attempt, retry_after=None):
        await asyncio.sleep(self.delay_for(attempt, retry_after))
