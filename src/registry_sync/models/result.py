"""Outcomes of synchronization cycles."""

from dataclasses import dataclass, field

from ..config import ImageSyncSpec
from ..exceptions import SyncError


@dataclass(frozen=True)
class JobResult:
    """Outcome of synchronizing one image pair."""

    spec: ImageSyncSpec
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        outcome = "ok" if self.error is None else str(self.error)
        return f"{self.spec.source} -> {self.spec.target}: {outcome}"


@dataclass
class PruneResult:
    """Outcome of one pruning pass."""

    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    space_reclaimed: int = 0


@dataclass
class CycleResult:
    """Outcome of one synchronization cycle.

    Jobs appear in configuration order regardless of the order in which
    they finished.
    """

    jobs: list[JobResult] = field(default_factory=list)
    prune: PruneResult | None = None

    @property
    def attempted(self) -> int:
        return len(self.jobs)

    @property
    def succeeded(self) -> int:
        return len([x for x in self.jobs if x.ok])

    @property
    def failures(self) -> list[JobResult]:
        return [x for x in self.jobs if not x.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        failures = self.failures
        text = (
            f"{self.succeeded}/{self.attempted} images synchronized,"
            f" {len(failures)} failed"
        )
        if failures:
            text += ": " + "; ".join(str(x) for x in failures)
        return text
