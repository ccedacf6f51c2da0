"""Component factory."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import closing, contextmanager
from typing import Self

import httpx
import structlog
from structlog.stdlib import BoundLogger

from .config import Config
from .services.daemon import SyncDaemon
from .services.pruner import Pruner
from .services.sync import SyncOrchestrator
from .storage.dockerd import DockerEngineClient
from .storage.engine import ContainerEngineClient


class Factory:
    """Build synchronization components.

    Parameters
    ----------
    engine
        Container engine client shared by all components.
    logger
        Logger to use for messages.
    http_client
        Client used to reload configuration from a URL.
    """

    @classmethod
    @contextmanager
    def standalone(cls) -> Iterator[Self]:
        """Context manager for components talking to the Docker daemon
        named by the environment.

        Yields
        ------
        Factory
            Newly-created factory.  Connections are closed on exit.

        Raises
        ------
        EngineError
            The Docker daemon could not be reached.
        """
        logger = structlog.get_logger(__name__)
        engine = DockerEngineClient.from_env()
        http_client = httpx.Client(follow_redirects=True)
        factory = cls(engine, logger, http_client=http_client)
        with closing(factory):
            yield factory

    def __init__(
        self,
        engine: ContainerEngineClient,
        logger: BoundLogger,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger
        self._http_client = http_client

    def create_orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(self._engine)

    def create_pruner(self) -> Pruner:
        return Pruner(self._engine)

    def create_daemon(
        self,
        config: Config,
        location: str,
        sleep: Callable[[float], None] = time.sleep,
    ) -> SyncDaemon:
        return SyncDaemon(
            config,
            location,
            self.create_orchestrator(),
            self.create_pruner(),
            sleep=sleep,
            http_client=self._http_client,
        )

    def close(self) -> None:
        self._engine.close()
        if self._http_client is not None:
            self._http_client.close()
        self._logger.debug("Closed engine and HTTP clients")
