"""Checker service - performs HTTP(S) and TCP checks."""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from ..errors import ConfigurationError
from ..schemas.monitor import MonitorSpec

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Result of a single check.

    ``ping`` is 0 on any failure, so ``ping > 0`` implies success.
    """
    ping: int
    up: bool
    error: str = ""


def parse_tcp_target(target: str) -> Tuple[str, int]:
    """Split a ``host:port`` target. IPv6 hosts may be bracketed."""
    host, sep, port_str = target.strip().rpartition(":")
    host = host.strip("[]")
    try:
        port = int(port_str)
    except ValueError:
        port = 0
    if not sep or not host or not (0 < port < 65536):
        raise ConfigurationError("Invalid TCP target format. Expected host:port")
    return host, port


def _elapsed_ms(start: float) -> int:
    # Keep successful pings strictly positive
    return max(1, int((time.perf_counter() - start) * 1000))


def _describe(error: Exception) -> str:
    return str(error) or error.__class__.__name__


class CheckerService:
    """Runs one check against one monitor. Never raises; never outlives the monitor timeout."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Custom transport is used by tests to stub out the network
        self._transport = transport

    async def check(self, monitor: MonitorSpec) -> ProbeResult:
        """Perform a check based on the monitor method."""
        start = time.perf_counter()
        try:
            if monitor.is_tcp:
                result = await self._check_tcp(monitor, start)
            else:
                result = await self._check_http(monitor, start)
        except Exception as e:
            logger.exception(f"Unexpected error checking {monitor.name}")
            result = ProbeResult(ping=0, up=False, error=f"Unexpected error: {_describe(e)}")

        if result.up:
            logger.debug(f"{monitor.name} is up ({result.ping}ms)")
        else:
            logger.info(f"{monitor.name} failed: {result.error}")
        return result

    async def _check_tcp(self, monitor: MonitorSpec, start: float) -> ProbeResult:
        """Open a raw connection; success means the handshake completed in time."""
        try:
            host, port = parse_tcp_target(monitor.target)
        except ConfigurationError as e:
            return ProbeResult(ping=0, up=False, error=str(e))

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=monitor.timeout / 1000,
            )
        except asyncio.TimeoutError:
            return ProbeResult(ping=0, up=False, error=f"Connection timeout after {monitor.timeout}ms")
        except OSError as e:
            return ProbeResult(ping=0, up=False, error=_describe(e))

        ping = _elapsed_ms(start)
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=1)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Error closing connection to {monitor.target}: {e}")

        return ProbeResult(ping=ping, up=True)

    async def _check_http(self, monitor: MonitorSpec, start: float) -> ProbeResult:
        """Perform HTTP/HTTPS check.

        Checks in order:
        1. Status code - member of expected_codes, or 2xx when unset
        2. Required keyword (if configured) - down if not found
        3. Forbidden keyword (if configured) - down if found
        """
        try:
            response = await asyncio.wait_for(
                self._request(monitor),
                timeout=monitor.timeout / 1000,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return ProbeResult(ping=0, up=False, error=f"Timeout after {monitor.timeout}ms")
        except httpx.ConnectError as e:
            return ProbeResult(ping=0, up=False, error=f"Connection error: {_describe(e)}")
        except httpx.HTTPError as e:
            return ProbeResult(ping=0, up=False, error=_describe(e))

        ping = _elapsed_ms(start)
        logger.debug(f"{monitor.name} responded with {response.status_code}")

        if monitor.expected_codes:
            if response.status_code not in monitor.expected_codes:
                return ProbeResult(
                    ping=0,
                    up=False,
                    error=f"Expected codes: {json.dumps(list(monitor.expected_codes))}, Got: {response.status_code}",
                )
        elif not (200 <= response.status_code <= 299):
            return ProbeResult(
                ping=0,
                up=False,
                error=f"Expected codes: 2xx, Got: {response.status_code}",
            )

        if monitor.response_keyword or monitor.response_forbidden_keyword:
            text = response.text

            if monitor.response_keyword and monitor.response_keyword not in text:
                logger.info(
                    f"{monitor.name} expected keyword {monitor.response_keyword}, "
                    f"not found in response (truncated to 100 chars): {text[:100]}"
                )
                return ProbeResult(
                    ping=0,
                    up=False,
                    error="HTTP response doesn't contain the configured keyword",
                )

            if monitor.response_forbidden_keyword and monitor.response_forbidden_keyword in text:
                logger.info(
                    f"{monitor.name} forbidden keyword {monitor.response_forbidden_keyword}, "
                    f"found in response (truncated to 100 chars): {text[:100]}"
                )
                return ProbeResult(
                    ping=0,
                    up=False,
                    error="HTTP response contains the configured forbidden keyword",
                )

        return ProbeResult(ping=ping, up=True)

    async def _request(self, monitor: MonitorSpec) -> httpx.Response:
        """Issue the configured request and read the full body."""
        headers = {key: str(value) for key, value in (monitor.headers or {}).items()}
        async with httpx.AsyncClient(
            timeout=monitor.timeout / 1000,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            return await client.request(
                monitor.method,
                monitor.target,
                headers=headers,
                content=monitor.body,
            )
