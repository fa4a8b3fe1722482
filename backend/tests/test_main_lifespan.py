"""Application lifespan: startup and clean shutdown of the inbox sweep."""

import asyncio
from unittest.mock import AsyncMock, patch

from fastapi import FastAPI


class TestLifespan:
    async def test_retry_sweep_cancelled_and_awaited_on_shutdown(self):
        from prontoplus.app.main import lifespan

        started = asyncio.Event()
        stopped = asyncio.Event()

        async def _fake_loop():
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                stopped.set()
                raise

        with (
            patch("prontoplus.app.main.init_db", new_callable=AsyncMock) as mock_init,
            patch("prontoplus.app.main.inbox_retry_loop", _fake_loop),
        ):
            async with lifespan(FastAPI()):
                await asyncio.wait_for(started.wait(), timeout=1)
                assert not stopped.is_set()

        mock_init.assert_awaited_once()
        # Shutdown only returns once the loop has finished unwinding
        assert stopped.is_set()
