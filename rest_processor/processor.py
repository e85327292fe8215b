"""Test processor entry point.

RestTestProcessor is the piece the test framework calls per test step. It
parses the block, runs it through an Executor and reports every failure as
an empty Response plus a log line; nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from rest_processor.block_parser import BlockParseError, parse_test_block
from rest_processor.executor import Executor, ExecutorError
from rest_processor.models import ProcessorConfig, Request, Response

logger = logging.getLogger(__name__)


@runtime_checkable
class TestProcessor(Protocol):
    """Capability every test processor offers to the framework."""

    name: str

    def execute_test(self, request: Request) -> Response: ...


class RestTestProcessor:
    """Runs REST test blocks.

    Each call builds its own Executor, so invocations share no state and may
    run concurrently from different threads.
    """

    name = "rest"

    def __init__(
        self,
        config: ProcessorConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or ProcessorConfig()
        self._transport = transport

    def execute_test(self, request: Request) -> Response:
        """Execute one test step and return its normalized Response."""
        logger.debug("Running %s", type(self).__name__)

        try:
            block = parse_test_block(request.test_block)
        except BlockParseError as e:
            logger.error("Invalid test block: %s", e)
            return Response()

        try:
            with Executor(self.config, transport=self._transport) as executor:
                return executor.execute(request.endpoint, block)
        except ExecutorError as e:
            logger.error("%s: %s", type(e).__name__, e)
            return Response()
