"""Pytest configuration and fixtures for rest-processor tests.

This file provides:
- Factories: make_block / make_request for building test steps
- CountingTransport: httpx transport that records requests instead of sending
- MockServer: Subprocess management for the mock API server (HTTP or HTTPS)
- write_self_signed_cert: Throwaway certificate for the HTTPS server
"""

from __future__ import annotations

import os
import socket
import subprocess
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from rest_processor.models import Request

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"


def make_block(
    operation: str = "GET",
    body: str | None = None,
    headers: list[str] | None = None,
    media: str | None = None,
) -> str:
    """Build a tagged test block.

    Header lines are joined with os.linesep, which is what the parser
    splits on.
    """
    parts = [f"<operation>{operation}</operation>"]
    if headers is not None:
        parts.append("<header>" + os.linesep.join(headers) + "</header>")
    if media is not None:
        parts.append(f"<media>{media}</media>")
    if body is not None:
        parts.append(f"<body>{body}</body>")
    return os.linesep.join(parts)


def make_request(endpoint: str = "http://testserver/echo", **block_kwargs: Any) -> Request:
    return Request(endpoint=endpoint, test_block=make_block(**block_kwargs))


class CountingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it was asked to send."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = handler or (lambda request: httpx.Response(200, text="ok"))
        super().__init__(self._record)

    def _record(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def transport() -> CountingTransport:
    return CountingTransport()


def unused_port() -> int:
    """Ask the OS for a free port. Another process could still take it first."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def write_self_signed_cert(directory: Path) -> tuple[Path, Path]:
    """Write a throwaway certificate and key that no client trusts.

    The certificate names no IP or DNS entry, so hostname checks fail too.
    """
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "rest-processor-test")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )

    certfile = directory / "cert.pem"
    keyfile = directory / "key.pem"
    certfile.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    keyfile.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    return certfile, keyfile


class MockServer:
    """Runs tests/integration/mock_server.py in a subprocess.

    Serves HTTPS when given a (certfile, keyfile) pair.
    """

    host = "127.0.0.1"

    def __init__(self, tls: tuple[Path, Path] | None = None) -> None:
        self.port = unused_port()
        self._args = ["--host", self.host, "--port", str(self.port)]
        if tls is not None:
            certfile, keyfile = tls
            self._args += ["--certfile", str(certfile), "--keyfile", str(keyfile)]
        scheme = "https" if tls is not None else "http"
        self.base_url = f"{scheme}://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def __enter__(self) -> MockServer:
        self._process = subprocess.Popen(
            [sys.executable, "-m", MOCK_SERVER_MODULE, *self._args],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd=PROJECT_ROOT,
        )
        deadline = time.monotonic() + 10.0
        while time.monotonic() < deadline and self._process.poll() is None:
            try:
                with socket.create_connection((self.host, self.port), timeout=1.0):
                    return self
            except OSError:
                time.sleep(0.1)
        self.__exit__(None, None, None)
        raise RuntimeError(f"Mock server did not start on port {self.port}")

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._process is None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        self._process = None


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Plain HTTP mock server, started once per test session."""
    with MockServer() as server:
        yield server


@pytest.fixture(scope="session")
def tls_mock_server(tmp_path_factory: pytest.TempPathFactory) -> Generator[MockServer, None, None]:
    """HTTPS mock server behind a self-signed certificate."""
    tls = write_self_signed_cert(tmp_path_factory.mktemp("certs"))
    with MockServer(tls=tls) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
