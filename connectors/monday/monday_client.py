"""Monday.com GraphQL HTTP Client.

Low-level HTTP client for Monday.com API calls.
Handles authorization headers, retries, and error handling.
"""

from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
import json
import asyncio
import logging

import aiohttp

from connectors.board_base import BoardClientError

logger = logging.getLogger(__name__)


DEFAULT_API_URL = "https://api.monday.com/v2"
DEFAULT_API_VERSION = "2024-01"


class MondayApiError(BoardClientError):
    """Base exception for Monday API errors."""
    pass


class MondayAuthenticationError(MondayApiError):
    """Authentication failed (401/403)."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message, status_code=status_code, retryable=False)


class MondayRateLimitError(MondayApiError):
    """Rate limit or complexity budget exceeded (429)."""

    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message, status_code=429, retryable=True)
        self.retry_after = retry_after


class MondayGraphQLError(MondayApiError):
    """The request reached Monday but the GraphQL layer returned errors."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None, retryable: bool = False,
                 not_found: bool = False):
        super().__init__(message, status_code=200, retryable=retryable, errors=errors, not_found=not_found)


# Error codes Monday returns for budget exhaustion rather than bad input
RETRYABLE_GRAPHQL_CODES = {
    "ComplexityException",
    "COMPLEXITY_BUDGET_EXHAUSTED",
    "RATE_LIMIT_EXCEEDED",
    "maxConcurrencyExceeded",
}

# Error codes for an item id that does not exist (deleted or never created)
NOT_FOUND_GRAPHQL_CODES = {
    "InvalidItemIdException",
    "ResourceNotFoundException",
}


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class MondayApiConfig:
    """Configuration for the Monday API client."""
    api_url: str = DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    api_token: str = ""
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    timeout_seconds: float = 30.0


class MondayApiClient:
    """HTTP client for the Monday.com GraphQL API.

    Provides:
    - Authenticated GraphQL calls
    - Error classification (auth, rate limit, GraphQL, transport)
    - Retries with exponential backoff

    Only idempotent requests (queries) are retried on timeouts and 5xx.
    A mutation whose response was lost may already have been applied, so
    it is surfaced to the caller instead. Rate-limited requests are always
    retried because Monday rejects them before executing anything.

    Usage:
        client = MondayApiClient(MondayApiConfig(api_token=token))
        await client.connect()
        data = await client.execute("query { me { id } }")
    """

    def __init__(self, api_config: MondayApiConfig):
        self.api_config = api_config
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> bool:
        """Initialize HTTP session."""
        if not self.api_config.api_token:
            raise MondayAuthenticationError("Monday API token is not configured")
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return True

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests."""
        return {
            "Authorization": self.api_config.api_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "API-Version": self.api_config.api_version,
        }

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
    ) -> Dict[str, Any]:
        """Execute a GraphQL request with automatic retries.

        Args:
            query: GraphQL document
            variables: GraphQL variables
            idempotent: False for mutations; disables retries on timeouts/5xx

        Returns:
            The ``data`` member of the response

        Raises:
            MondayAuthenticationError: Authentication failed
            MondayRateLimitError: Rate limit exceeded after retries
            MondayGraphQLError: GraphQL errors in the response
            MondayApiError: Transport or other HTTP errors
        """
        if not self._session:
            raise MondayApiError("Not connected. Call connect() first.")

        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        retry_config = self.api_config.retry_config
        timeout = aiohttp.ClientTimeout(total=self.api_config.timeout_seconds)
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            try:
                async with self._session.post(
                    self.api_config.api_url,
                    headers=self._get_headers(),
                    json=payload,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status in (401, 403):
                        raise MondayAuthenticationError(
                            f"Authentication failed: {response_text}",
                            response.status,
                        )

                    if response.status == 429:
                        retry_after = int(response.headers.get("Retry-After", 60))
                        if attempt < retry_config.max_retries:
                            logger.warning(f"Rate limited, waiting {retry_after}s...")
                            await asyncio.sleep(retry_after)
                            continue
                        raise MondayRateLimitError("Rate limit exceeded", retry_after)

                    if response.status in retry_config.retry_on_status:
                        if idempotent and attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            logger.warning(
                                f"Request failed with {response.status}, "
                                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                            )
                            await asyncio.sleep(delay)
                            continue
                        raise MondayApiError(
                            f"API error {response.status}: {response_text}",
                            response.status,
                            retryable=True,
                        )

                    if response.status >= 400:
                        raise MondayApiError(
                            f"API error {response.status}: {response_text}",
                            response.status,
                            retryable=False,
                        )

                    try:
                        body = json.loads(response_text) if response_text else {}
                    except ValueError:
                        body = None
                    if not isinstance(body, dict):
                        # Proxy or gateway page instead of a GraphQL response
                        if idempotent and attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            logger.warning(f"Unparseable response body, retrying in {delay:.1f}s")
                            await asyncio.sleep(delay)
                            continue
                        raise MondayApiError(
                            f"Unparseable response body: {response_text[:200]}",
                            response.status,
                            retryable=True,
                        )

                    self._raise_for_graphql_errors(body)
                    return body.get("data") or {}

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_error = e
                if idempotent and attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request failed with {type(e).__name__}: {e}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise MondayApiError(
                    f"Request failed: {type(e).__name__}: {e}",
                    retryable=True,
                ) from e

        raise MondayApiError(f"Request failed: {last_error}", retryable=True)

    @staticmethod
    def _raise_for_graphql_errors(body: Dict[str, Any]) -> None:
        """Raise MondayGraphQLError if the response carries errors.

        Monday reports errors either as a GraphQL ``errors`` list or, for
        some API versions, as top-level ``error_code``/``error_message``.
        """
        errors = body.get("errors")
        if not errors and body.get("error_code"):
            errors = [{
                "message": body.get("error_message", body["error_code"]),
                "extensions": {"code": body["error_code"]},
            }]
        if not errors:
            return

        codes = set()
        for err in errors:
            extensions = err.get("extensions") or {}
            if extensions.get("code"):
                codes.add(extensions["code"])
        message = "; ".join(err.get("message", str(err)) for err in errors)
        raise MondayGraphQLError(
            message,
            errors=errors,
            retryable=bool(codes & RETRYABLE_GRAPHQL_CODES),
            not_found=bool(codes & NOT_FOUND_GRAPHQL_CODES),
        )
