"""Request quota counter backed by the Upstash Redis REST API."""
from dataclasses import dataclass

import httpx

from ledger.config import settings
from ledger.core.exceptions import RateLimitServiceError


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int


class RateLimiter:
    """
    Fixed-window rate limiter.

    Each check runs ``INCR``, ``EXPIRE ... NX`` and ``TTL`` on the key
    ``<prefix>:<identifier>`` in a single pipeline call, so the window starts
    with the first request and the count is shared by every API process.
    """

    def __init__(
        self,
        url: str = settings.UPSTASH_REDIS_REST_URL,
        token: str = settings.UPSTASH_REDIS_REST_TOKEN,
        max_requests: int = settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds: int = settings.RATE_LIMIT_WINDOW_SECONDS,
        timeout_seconds: float = settings.RATE_LIMIT_TIMEOUT_SECONDS,
        prefix: str = settings.RATE_LIMIT_PREFIX,
    ):
        """
        Initialize the rate limiter.

        Args:
            url: Upstash Redis REST endpoint
            token: Upstash Redis REST token
            max_requests: Requests allowed per identifier per window
            window_seconds: Window length in seconds
            timeout_seconds: Timeout for each counter request
            prefix: Namespace for counter keys
        """
        self.url = url.rstrip("/")
        self.token = token
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.timeout_seconds = timeout_seconds
        self.prefix = prefix

    async def check(self, identifier: str) -> RateLimitResult:
        """
        Count one request for ``identifier`` and report whether it is admitted.

        Raises:
            RateLimitServiceError: the counter could not be consulted
        """
        key = f"{self.prefix}:{identifier}"
        commands = [
            ["INCR", key],
            ["EXPIRE", key, str(self.window_seconds), "NX"],
            ["TTL", key],
        ]

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.url}/pipeline",
                    json=commands,
                    headers={"Authorization": f"Bearer {self.token}"},
                )
                response.raise_for_status()
                results = response.json()
        except httpx.TimeoutException as e:
            raise RateLimitServiceError("Rate limit service timed out") from e
        except httpx.HTTPStatusError as e:
            raise RateLimitServiceError(
                f"Rate limit service returned error: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise RateLimitServiceError(
                f"Failed to connect to rate limit service: {str(e)}"
            ) from e
        except ValueError as e:
            raise RateLimitServiceError(
                f"Failed to parse rate limit service response: {str(e)}"
            ) from e

        return self._parse_results(results)

    def _parse_results(self, results) -> RateLimitResult:
        """
        Turn the pipeline reply into a RateLimitResult.

        Args:
            results: List of ``{"result": ...}`` / ``{"error": ...}`` entries,
                one per command

        Returns:
            RateLimitResult for the current window
        """
        try:
            for entry in results:
                if "error" in entry:
                    raise RateLimitServiceError(
                        f"Rate limit service error: {entry['error']}"
                    )
            count = int(results[0]["result"])
            ttl = int(results[2]["result"])
        except (TypeError, KeyError, IndexError, ValueError) as e:
            raise RateLimitServiceError(
                f"Invalid response from rate limit service: {str(e)}"
            ) from e

        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(self.max_requests - count, 0),
            reset_seconds=ttl if ttl > 0 else self.window_seconds,
        )
