import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from auth_proxy.metrics import upstream_up
from auth_proxy.utils.exception_logging import log_exception_with_details
from auth_proxy.vars import (
    BACKEND_URL,
    BACKEND_PROBE_PATH,
    HEALTH_CHECK_INTERVAL,
    HEALTH_CHECK_TIMEOUT,
)

logger = logging.getLogger("uvicorn.error")


def probe_url(base_url: str, probe_path: Optional[str] = None) -> str:
    """The URL to probe: the base URL, with its path replaced when a probe path is set."""
    if not probe_path:
        return base_url
    parts = urlsplit(base_url)
    path = probe_path if probe_path.startswith("/") else f"/{probe_path}"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))


class HealthProber:
    """Tracks whether the upstream is reachable.

    ``is_up`` is written only by the background loop (and the startup probe)
    and read by request handlers without locking. It starts out True so the
    proxy does not flash the maintenance page before the first probe lands.
    """

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        probe_path: Optional[str] = BACKEND_PROBE_PATH,
        interval: float = HEALTH_CHECK_INTERVAL,
        timeout: float = HEALTH_CHECK_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = probe_url(base_url, probe_path)
        self.interval = interval
        self.timeout = timeout
        self._transport = transport
        self._up = True
        self._task: Optional[asyncio.Task] = None

    @property
    def is_up(self) -> bool:
        return self._up

    async def probe_once(self) -> bool:
        """Single GET against the upstream. Never raises."""
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
                transport=self._transport,
            ) as client:
                response = await client.get(self.url)
            up = 200 <= response.status_code < 400
            if not up:
                logger.debug(f"[Health] {self.url} answered {response.status_code}")
            return up
        except httpx.HTTPError as e:
            logger.debug(f"[Health] {self.url} unreachable: {type(e).__name__}: {e}")
            return False
        except Exception as e:
            log_exception_with_details(logger, "[Health]", e, level=logging.WARNING)
            return False

    async def refresh(self) -> bool:
        up = await self.probe_once()
        if up != self._up:
            if up:
                logger.info(f"[Health] Upstream {self.url} is back up")
            else:
                logger.warning(
                    f"[Health] Upstream {self.url} is down, entering maintenance mode"
                )
        self._up = up
        upstream_up.set(1 if up else 0)
        return up

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._up = False
                upstream_up.set(0)
                log_exception_with_details(logger, "[Health]", e)

    async def start(self) -> None:
        await self.refresh()
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"[Health] Probing {self.url} every {self.interval}s "
            f"(upstream {'up' if self._up else 'down'})"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
