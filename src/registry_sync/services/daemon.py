"""The synchronization loop."""

import time
from collections.abc import Callable

import httpx
import structlog

from ..config import Config
from ..exceptions import ConfigError, PruneError
from ..models.result import CycleResult
from .pruner import Pruner
from .sync import SyncOrchestrator


class SyncDaemon:
    """Synchronize, prune, reload configuration, sleep; forever.

    The configuration in effect is an immutable snapshot that is replaced
    only between cycles, so every job of a cycle sees the same one.  A
    reload that fails leaves the previous snapshot in place.

    Parameters
    ----------
    config
        Initial configuration.
    location
        Path or URL the configuration is reloaded from.
    orchestrator
        Runs the image synchronization jobs of a cycle.
    pruner
        Removes dangling images after a cycle.
    sleep
        Called with the number of seconds to wait between cycles.
    http_client
        Client for reloading configuration from a URL.
    """

    def __init__(
        self,
        config: Config,
        location: str,
        orchestrator: SyncOrchestrator,
        pruner: Pruner,
        *,
        sleep: Callable[[float], None] = time.sleep,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._location = location
        self._orchestrator = orchestrator
        self._pruner = pruner
        self._sleep = sleep
        self._http_client = http_client
        self._logger = structlog.get_logger(__name__)

    @property
    def config(self) -> Config:
        return self._config

    def run_cycle(self) -> CycleResult:
        """Synchronize every image, then prune if enabled."""
        cfg = self._config
        result = self._orchestrator.run(cfg)
        if result.ok:
            self._logger.info(result.summary())
        else:
            self._logger.error(f"Error processing images: {result.summary()}")

        if cfg.disable_prune:
            return result
        protected = [x.source for x in cfg.images]
        protected.extend(x.target for x in cfg.images)
        try:
            result.prune = self._pruner.prune(protected)
        except PruneError as exc:
            self._logger.error(f"Error pruning unused images: {exc}")
        return result

    def reload(self) -> bool:
        """Replace the configuration with a freshly-loaded one.

        Returns
        -------
        bool
            Whether the reload succeeded.  On failure the previous
            configuration stays in effect.
        """
        try:
            new_config = Config.load(self._location, client=self._http_client)
        except ConfigError as exc:
            self._logger.error(f"Keeping previous configuration: {exc}")
            return False
        self._config = new_config
        return True

    def run(self, max_cycles: int | None = None) -> CycleResult:
        """Run cycles until killed, or until ``max_cycles`` have run.

        Returns
        -------
        CycleResult
            Result of the last cycle.
        """
        count = 0
        while True:
            result = self.run_cycle()
            count += 1
            if max_cycles is not None and count >= max_cycles:
                return result
            self.reload()
            seconds = self._config.duration.total_seconds()
            self._logger.info(f"Sleeping for {int(seconds)} seconds")
            self._sleep(seconds)
