"""Executor - Sends one parsed test block to an endpoint and captures the result.

The Executor owns a single httpx client for the duration of a test step.
It validates the endpoint, applies headers and media type, dispatches the
verb and converts the httpx response into a Response record.

TLS relaxation is scoped to the Executor's own client: when insecure_tls is
enabled the client accepts any certificate chain and any hostname. Other
HTTP traffic in the process keeps its normal verification.
"""

from __future__ import annotations

import logging
import re
import ssl
from typing import Any

import httpx

from rest_processor.models import ParsedTestBlock, ProcessorConfig, Response

logger = logging.getLogger(__name__)

# Verbs that carry the parsed body as the request entity.
ENTITY_METHODS = frozenset({"POST", "PUT"})
# Verbs sent without an entity even when the block has a <body>.
BODILESS_METHODS = frozenset({"GET", "HEAD", "DELETE"})
SUPPORTED_METHODS = ENTITY_METHODS | BODILESS_METHODS

_PLACEHOLDER = re.compile(r"\$\{")


class ExecutorError(Exception):
    """Base class for executor errors."""


class TlsSetupError(ExecutorError):
    """Raised when the permissive TLS context cannot be built."""


class UnresolvedEndpointError(ExecutorError):
    """Raised when the endpoint still contains a ${...} placeholder."""


class UnsupportedOperationError(ExecutorError):
    """Raised when the operation is not one of the supported HTTP verbs."""


class RequestError(ExecutorError):
    """Raised when a request fails (connection error, timeout, etc.)."""


def contains_placeholder(endpoint: str) -> bool:
    """True if the endpoint has an unexpanded ${...} property reference."""
    return _PLACEHOLDER.search(endpoint) is not None


def build_insecure_ssl_context() -> ssl.SSLContext:
    """Build an SSL context that trusts every certificate and hostname.

    For test environments only.

    Raises:
        TlsSetupError: If the context cannot be created.
    """
    try:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
    except (ssl.SSLError, ValueError) as e:
        raise TlsSetupError(f"Unable to build permissive SSL context: {e}") from e
    return ssl_context


def render_headers(items: list[tuple[str, str]]) -> str:
    """Render response headers as '{name=[v1, v2], other=[v]}'.

    Names keep first-seen order and values keep received order, so the
    output is deterministic for a given response.
    """
    grouped: dict[str, list[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    rendered = ", ".join(
        f"{key}=[{', '.join(values)}]" for key, values in grouped.items()
    )
    return "{" + rendered + "}"


class Executor:
    """Executes parsed test blocks against an endpoint.

    Usage:
        with Executor(config) as executor:
            response = executor.execute(endpoint, parsed_block)
    """

    def __init__(
        self,
        config: ProcessorConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            config: Processor settings. Defaults to ProcessorConfig().
            transport: Optional httpx transport, mainly for tests.

        Raises:
            TlsSetupError: If insecure_tls is set and the SSL context fails.
        """
        self._config = config or ProcessorConfig()
        self._client = httpx.Client(**self._build_client_kwargs(transport))

    def __enter__(self) -> "Executor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _build_client_kwargs(
        self, transport: httpx.BaseTransport | None
    ) -> dict[str, Any]:
        """Build kwargs for httpx.Client including TLS configuration."""
        kwargs: dict[str, Any] = {
            "timeout": self._config.timeout,
            "follow_redirects": self._config.follow_redirects,
        }

        if self._config.insecure_tls:
            kwargs["verify"] = build_insecure_ssl_context()
        # else: use httpx default (True)

        if transport is not None:
            kwargs["transport"] = transport

        return kwargs

    def execute(self, endpoint: str, block: ParsedTestBlock) -> Response:
        """Send the request described by block to endpoint.

        Args:
            endpoint: Fully resolved target URL.
            block: Parsed test block.

        Returns:
            Response carrying the server's status, headers and body. 4xx and
            5xx answers are returned normally.

        Raises:
            UnresolvedEndpointError: If endpoint contains ${...}.
            UnsupportedOperationError: If the operation is not a supported verb.
            RequestError: If the request fails in transport.
        """
        if contains_placeholder(endpoint):
            raise UnresolvedEndpointError(
                f"Endpoint: {endpoint} contains a property that has not been expanded"
            )

        headers = self._build_headers(block)

        method = block.operation.upper()
        if method not in SUPPORTED_METHODS:
            raise UnsupportedOperationError(
                f"Operation: {method} is not a REST operation"
            )

        content: bytes | None = None
        if method in ENTITY_METHODS and block.body is not None:
            content = block.body.encode("utf-8")

        try:
            http_response = self._client.request(
                method=method,
                url=endpoint,
                headers=headers if headers else None,
                content=content,
            )
        except httpx.TimeoutException as e:
            raise RequestError(f"{method} {endpoint} request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise RequestError(f"{method} {endpoint} connection error: {e}") from e
        except httpx.RequestError as e:
            raise RequestError(f"{method} {endpoint} request error: {e}") from e
        except httpx.InvalidURL as e:
            raise RequestError(f"{method} {endpoint} invalid URL: {e}") from e
        except UnicodeEncodeError as e:
            # httpx requires ASCII in header names and values.
            raise RequestError(
                f"{method} {endpoint} encoding error: non-ASCII characters in request "
                f"headers. Character: {e.object[e.start:e.end]!r} at position {e.start}."
            ) from e

        return self._convert_response(http_response, method)

    def _build_headers(self, block: ParsedTestBlock) -> list[tuple[str, str]]:
        """Build the ordered header list, with media type as Content-Type.

        A recognized media type replaces any Content-Type from <header>.
        """
        headers = [header.as_tuple() for header in block.headers]
        if block.media_type is not None:
            headers = [(k, v) for k, v in headers if k.lower() != "content-type"]
            headers.append(("Content-Type", block.media_type.value))
        return headers

    def _convert_response(self, response: httpx.Response, method: str) -> Response:
        """Convert an httpx Response to a Response record.

        HEAD answers have no entity, so their body stays None.
        """
        body: str | None = None
        if method != "HEAD":
            body = response.text

        return Response(
            body=body,
            status_code=response.status_code,
            response_headers=render_headers(list(response.headers.multi_items())),
        )
