"""Provides image synchronization services."""

from concurrent.futures import Future, ThreadPoolExecutor

import structlog

from ..config import Config, ImageSyncSpec
from ..exceptions import EngineError, SyncError, SyncStep
from ..models.credential import CredentialResolver, RegistryCredential
from ..models.result import CycleResult, JobResult
from ..storage.engine import ContainerEngineClient


class ImageSyncJob:
    """Mirror one image: pull the source, tag it as the target, push it.

    Each step runs to completion before the next begins, and the first
    failing step ends the job.  Nothing is undone on failure: an image that
    was pulled and tagged stays in the local store even if the push fails.

    Parameters
    ----------
    engine
        Container engine client.
    spec
        Image pair to mirror.
    pull_credential
        Credential for the source registry, or `None` for anonymous.
    push_credential
        Credential for the target registry, or `None` for anonymous.
    """

    def __init__(
        self,
        engine: ContainerEngineClient,
        spec: ImageSyncSpec,
        pull_credential: RegistryCredential | None = None,
        push_credential: RegistryCredential | None = None,
    ) -> None:
        self._engine = engine
        self.spec = spec
        self.pull_credential = pull_credential
        self.push_credential = push_credential
        self.step = SyncStep.PULL
        self._logger = structlog.get_logger(__name__).bind(
            source=spec.source, target=spec.target
        )

    def reference(self, step: SyncStep) -> str:
        """Image reference a given step operates on."""
        return self.spec.target if step == SyncStep.PUSH else self.spec.source

    def run(self) -> JobResult:
        """Run the job, reporting rather than raising engine failures."""
        try:
            self._sync()
        except SyncError as exc:
            self._logger.error(
                f"Failed to process image {self.spec.source}: {exc}",
                step=exc.step.value,
            )
            return JobResult(spec=self.spec, error=exc)
        return JobResult(spec=self.spec)

    def _sync(self) -> None:
        source = self.spec.source
        target = self.spec.target
        self._logger.info(f"Start to process image {source}")

        self.step = SyncStep.PULL
        try:
            self._engine.pull(source, self.pull_credential)
        except EngineError as exc:
            raise SyncError(self.step, source, exc) from exc
        self._logger.info(f"Pull image {source} success")

        self.step = SyncStep.TAG
        try:
            self._engine.tag(source, target)
        except EngineError as exc:
            raise SyncError(self.step, source, exc) from exc
        self._logger.info(f"Tag image {source} to {target} success")

        self.step = SyncStep.PUSH
        try:
            self._engine.push(target, self.push_credential)
        except EngineError as exc:
            raise SyncError(self.step, target, exc) from exc
        self._logger.info(f"Push image {target} success")


class SyncOrchestrator:
    """Runs every image synchronization of a cycle concurrently.

    There is one thread per configured image; image lists are short and
    the work is waiting on the engine.  All jobs run to completion whether
    or not their siblings fail, and `run` returns only once all of them
    have finished.
    """

    def __init__(self, engine: ContainerEngineClient) -> None:
        self._engine = engine
        self._logger = structlog.get_logger(__name__)

    def make_jobs(
        self, cfg: Config, resolver: CredentialResolver
    ) -> list[ImageSyncJob]:
        """Create one job per image, with its credentials already chosen.

        Pull credentials are chosen by the source reference alone and push
        credentials by the target reference alone.
        """
        return [
            ImageSyncJob(
                self._engine,
                spec,
                pull_credential=resolver.resolve(spec.source),
                push_credential=resolver.resolve(spec.target),
            )
            for spec in cfg.images
        ]

    def run(self, cfg: Config) -> CycleResult:
        resolver = cfg.credential_resolver()
        jobs = self.make_jobs(cfg, resolver)
        if not jobs:
            self._logger.warning("No images configured")
            return CycleResult()
        self._logger.info(f"Synchronizing {len(jobs)} images")
        with ThreadPoolExecutor(
            max_workers=len(jobs), thread_name_prefix="sync"
        ) as executor:
            futures = [executor.submit(job.run) for job in jobs]
            results = [
                self._collect(job, fut)
                for job, fut in zip(jobs, futures, strict=True)
            ]
        return CycleResult(jobs=results)

    def _collect(self, job: ImageSyncJob, future: Future) -> JobResult:
        try:
            return future.result()
        except Exception as exc:
            # Fails this image only, whatever was raised.
            self._logger.exception(
                f"Unexpected error processing image {job.spec.source}",
                step=job.step.value,
            )
            error = SyncError(job.step, job.reference(job.step), exc)
            return JobResult(spec=job.spec, error=error)
