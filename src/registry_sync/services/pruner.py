"""Removal of dangling local images left behind by synchronization."""

from collections.abc import Iterable

import structlog

from ..exceptions import EngineError, PruneError
from ..models.image import reference_forms
from ..models.result import PruneResult
from ..storage.engine import ContainerEngineClient


class Pruner:
    """Force-remove local images that no longer have a usable tag.

    Every pull of a moved tag leaves the previous image behind untagged;
    over many cycles those add up.  An image is removed only if it is
    dangling (no tags, or only ``<none>`` tags) and none of its tags or
    digests is one of the protected references.
    """

    def __init__(self, engine: ContainerEngineClient) -> None:
        self._engine = engine
        self._logger = structlog.get_logger(__name__)

    def prune(self, protected: Iterable[str] = ()) -> PruneResult:
        """Remove dangling images.

        Parameters
        ----------
        protected
            Image references that must survive pruning.

        Raises
        ------
        PruneError
            The local images could not be listed.
        """
        self._logger.info("Pruning unused and untagged images")
        keep: set[str] = set()
        for ref in protected:
            keep |= reference_forms(ref)
        try:
            images = self._engine.list_images()
        except EngineError as exc:
            raise PruneError(f"Failed to list images: {exc}") from exc

        result = PruneResult()
        for img in images:
            if not img.dangling or img.referenced_by(keep):
                continue
            try:
                self._engine.remove_image(img.id)
            except EngineError as exc:
                self._logger.warning(
                    f"Failed to remove image {img}: {exc}", image_id=img.id
                )
                result.failed.append(img.id)
                continue
            result.deleted.append(img.id)
            result.space_reclaimed += img.size
            self._logger.debug(f"Removed image {img.short_id}")

        self._logger.info(
            f"Pruned {len(result.deleted)} images, reclaimed space:"
            f" {result.space_reclaimed} bytes"
        )
        return result
