"""Serializes voucher numbering per (sales point, voucher type).

Reading the last number and submitting last+1 must not interleave with
another issuance on the same sequence. An in-process asyncio lock covers
coroutines in one worker; with a Redis client the lock also spans processes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import LockNotOwnedError

from src.exceptions import TransportException

logger = logging.getLogger(__name__)


class SalesPointLock:
    def __init__(
        self,
        redis: Redis | None = None,
        namespace: str = "afip:wsfe",
        timeout_seconds: float = 120.0,
        blocking_timeout_seconds: float = 60.0,
    ) -> None:
        self.redis = redis
        self.namespace = namespace
        self.timeout_seconds = timeout_seconds
        self.blocking_timeout_seconds = blocking_timeout_seconds
        self._local: defaultdict[tuple[int, int], asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, sales_point: int, voucher_type: int) -> AsyncIterator[None]:
        async with self._local[(sales_point, voucher_type)]:
            if self.redis is None:
                yield
                return

            lock = self.redis.lock(
                f"{self.namespace}:{sales_point}:{voucher_type}",
                timeout=self.timeout_seconds,
                blocking_timeout=self.blocking_timeout_seconds,
            )
            if not await lock.acquire():
                raise TransportException(
                    f"Sales point {sales_point}/{voucher_type} is busy, try again later"
                )
            try:
                yield
            finally:
                try:
                    await lock.release()
                except LockNotOwnedError:
                    logger.warning(
                        "Sales point lock %s/%s expired before release", sales_point, voucher_type
                    )
