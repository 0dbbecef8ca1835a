"""Tests for the per-sequence voucher numbering lock."""

from __future__ import annotations

import asyncio

import pytest

from src.exceptions import TransportException
from src.modules.afip.sales_point_lock import SalesPointLock


class FakeRedisLock:
    def __init__(self, owner, name, acquired=True):
        self.owner = owner
        self.name = name
        self.acquired = acquired

    async def acquire(self):
        self.owner.events.append(("acquire", self.name))
        return self.acquired

    async def release(self):
        self.owner.events.append(("release", self.name))


class FakeRedis:
    def __init__(self, acquired=True):
        self.acquired = acquired
        self.events = []

    def lock(self, name, timeout, blocking_timeout):
        return FakeRedisLock(self, name, self.acquired)


class TestSalesPointLock:
    @pytest.mark.asyncio
    async def test_same_sequence_is_serialized(self):
        lock = SalesPointLock()
        order = []

        async def issue(tag):
            async with lock.hold(1, 6):
                order.append(f"{tag}-start")
                await asyncio.sleep(0)
                order.append(f"{tag}-end")

        await asyncio.gather(issue("a"), issue("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_redis_lock_is_taken_and_released(self):
        redis = FakeRedis()
        lock = SalesPointLock(redis, namespace="afip:wsfe:20123456789")

        async with lock.hold(3, 6):
            pass

        assert redis.events == [
            ("acquire", "afip:wsfe:20123456789:3:6"),
            ("release", "afip:wsfe:20123456789:3:6"),
        ]

    @pytest.mark.asyncio
    async def test_busy_sequence_raises_retryable_error(self):
        lock = SalesPointLock(FakeRedis(acquired=False))

        with pytest.raises(TransportException) as exc_info:
            async with lock.hold(3, 6):
                pass
        assert exc_info.value.retryable is True
