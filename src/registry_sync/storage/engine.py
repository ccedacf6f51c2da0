"""Abstract superclass for container engine clients."""

from abc import abstractmethod

from ..models.credential import RegistryCredential
from ..models.image import LocalImage


class ContainerEngineClient:
    """Collection of methods we expect any container engine client to
    provide.

    These are synchronous and each call blocks until the engine has
    finished the operation, including reading any streamed progress
    output to the end.  Concurrency is the caller's business: the sync
    orchestrator runs one thread per image, and implementations must be
    safe to call from several threads at once.

    All methods raise `~registry_sync.exceptions.EngineError` on failure.
    """

    @abstractmethod
    def pull(
        self, reference: str, credential: RegistryCredential | None = None
    ) -> None:
        """Pull an image reference into the local store."""
        ...

    @abstractmethod
    def tag(self, source: str, target: str) -> None:
        """Give the local image ``source`` the additional name ``target``."""
        ...

    @abstractmethod
    def push(
        self, reference: str, credential: RegistryCredential | None = None
    ) -> None:
        """Push a locally-named image to its registry."""
        ...

    @abstractmethod
    def list_images(self) -> list[LocalImage]:
        """List all local images, including intermediate ones."""
        ...

    @abstractmethod
    def remove_image(self, image_id: str) -> None:
        """Force-remove an image and any untagged parents it leaves."""
        ...

    def close(self) -> None:
        """Release any connection to the engine."""
        return
