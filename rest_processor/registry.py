"""Processor registry - the registration side of the processor lifecycle.

The test framework looks processors up by name. Activator holds the hooks a host runtime calls when this distribution is
activated and shut down; load_entry_points() discovers every processor
installed under the ``testify_processors`` entry point group.
"""

from __future__ import annotations

import logging

from rest_processor.models import ProcessorConfig
from rest_processor.processor import RestTestProcessor, TestProcessor

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "testify_processors"


class RegistryError(Exception):
    """Raised when a processor cannot be registered."""


class ProcessorRegistry:
    """Name -> processor mapping."""

    def __init__(self) -> None:
        self._processors: dict[str, TestProcessor] = {}

    def register(self, processor: TestProcessor) -> None:
        """Register processor under its name.

        Raises:
            RegistryError: If the object is not a TestProcessor or the name
                is already taken.
        """
        if not isinstance(processor, TestProcessor):
            raise RegistryError(f"{processor!r} does not implement TestProcessor")
        if processor.name in self._processors:
            raise RegistryError(f"Processor '{processor.name}' is already registered")
        self._processors[processor.name] = processor
        logger.debug("Registered processor '%s'", processor.name)

    def deregister(self, processor: TestProcessor) -> None:
        """Remove processor if it is the one registered under its name."""
        if self._processors.get(processor.name) is processor:
            del self._processors[processor.name]
            logger.debug("Deregistered processor '%s'", processor.name)

    def get(self, name: str) -> TestProcessor | None:
        return self._processors.get(name)

    def names(self) -> list[str]:
        return sorted(self._processors)

    def __contains__(self, name: object) -> bool:
        return name in self._processors

    def __len__(self) -> int:
        return len(self._processors)

    def load_entry_points(self) -> list[str]:
        """Instantiate and register every advertised processor.

        Returns:
            Names of the processors registered by this call. Entry points
            whose name is already registered are skipped.
        """
        from importlib.metadata import entry_points

        loaded: list[str] = []
        for entrypoint in entry_points().select(group=ENTRY_POINT_GROUP):
            factory = entrypoint.load()
            processor = factory()
            if processor.name in self._processors:
                logger.debug(
                    "Skipping entry point '%s': '%s' already registered",
                    entrypoint.name,
                    processor.name,
                )
                continue
            self.register(processor)
            loaded.append(processor.name)
        return loaded


class Activator:
    """Lifecycle hooks for a host runtime.

    start() registers a fresh RestTestProcessor; stop() removes it again.
    """

    def __init__(self, config: ProcessorConfig | None = None) -> None:
        self._config = config
        self._processor: RestTestProcessor | None = None

    def start(self, registry: ProcessorRegistry) -> RestTestProcessor:
        self._processor = RestTestProcessor(self._config)
        registry.register(self._processor)
        return self._processor

    def stop(self, registry: ProcessorRegistry) -> None:
        if self._processor is not None:
            registry.deregister(self._processor)
            self._processor = None
