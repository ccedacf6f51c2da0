"""Model for the local images the container engine reports."""

from dataclasses import dataclass, field
from typing import Any, Self

from docker.utils import parse_repository_tag

NONE_TAG = "<none>:<none>"
HUB_PREFIXES = (
    "docker.io/library/",
    "index.docker.io/library/",
    "docker.io/",
    "index.docker.io/",
)

type JSONImage = dict[str, Any]


def reference_forms(reference: str) -> set[str]:
    """Return the ways the engine may list an image reference.

    The engine reports Docker Hub images in their short form and always
    with a tag, so ``docker.io/library/alpine`` shows up as
    ``alpine:latest``.
    """
    repo, tag = parse_repository_tag(reference)
    if tag is None:
        tag = "latest"
    # Tags cannot contain colons; digests always do.
    sep = "@" if ":" in tag else ":"
    for prefix in HUB_PREFIXES:
        if repo.startswith(prefix):
            repo = repo[len(prefix) :]
            break
    return {reference, f"{repo}{sep}{tag}"}


@dataclass
class LocalImage:
    """An image in the engine's local store.

    Only the fields we need for pruning are kept: the ID, the human-readable
    tags, the ``repo@digest`` references, and the size in bytes.
    """

    id: str
    tags: list[str] = field(default_factory=list)
    digests: list[str] = field(default_factory=list)
    size: int = 0

    @classmethod
    def from_json(cls, obj: JSONImage) -> Self:
        """Build from one entry of the engine's image list response.

        The engine returns ``null`` rather than an empty list for images
        without tags, and very old engines use ``<none>:<none>`` instead.
        """
        return cls(
            id=obj["Id"],
            tags=list(obj.get("RepoTags") or []),
            digests=list(obj.get("RepoDigests") or []),
            size=int(obj.get("Size") or 0),
        )

    @property
    def dangling(self) -> bool:
        """True if the image has no tag a human could refer to it by."""
        return all(t == NONE_TAG or t.endswith(":<none>") for t in self.tags)

    @property
    def short_id(self) -> str:
        dig = self.id.split(":", 1)[-1]
        return dig[:12]

    def referenced_by(self, references: set[str]) -> bool:
        """Whether any tag or digest of this image is in ``references``."""
        return bool(references.intersection(self.tags + self.digests))

    def __str__(self) -> str:
        name = self.tags[0] if self.tags else "<unnamed>"
        return f"{name} ({self.short_id})"
