"""Test fixtures for registry synchronization."""

import base64
import json
import threading
from pathlib import Path

import pytest

from registry_sync.exceptions import EngineError
from registry_sync.models.credential import RegistryCredential
from registry_sync.models.image import LocalImage
from registry_sync.storage.engine import ContainerEngineClient

type Extra = RegistryCredential | str | None


class FakeEngineClient(ContainerEngineClient):
    """In-memory container engine that records every call.

    Set ``failures[(operation, reference)]`` to make that call raise
    `EngineError` with the given message.  For ``tag`` the reference is the
    source image.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Extra]] = []
        self.failures: dict[tuple[str, str], str] = {}
        self.images: list[LocalImage] = []
        self.list_error: str | None = None
        self.closed = False
        self._lock = threading.Lock()

    def _record(self, op: str, ref: str, extra: Extra) -> None:
        with self._lock:
            self.calls.append((op, ref, extra))
        message = self.failures.get((op, ref))
        if message is not None:
            raise EngineError(message)

    def pull(
        self, reference: str, credential: RegistryCredential | None = None
    ) -> None:
        self._record("pull", reference, credential)

    def tag(self, source: str, target: str) -> None:
        self._record("tag", source, target)

    def push(
        self, reference: str, credential: RegistryCredential | None = None
    ) -> None:
        self._record("push", reference, credential)

    def list_images(self) -> list[LocalImage]:
        if self.list_error is not None:
            raise EngineError(self.list_error)
        with self._lock:
            self.calls.append(("list", "", None))
        return list(self.images)

    def remove_image(self, image_id: str) -> None:
        self._record("remove", image_id, None)
        self.images = [x for x in self.images if x.id != image_id]

    def close(self) -> None:
        self.closed = True

    def ops(self, reference: str) -> list[str]:
        """Operations performed on one reference, in order."""
        return [op for op, ref, _ in self.calls if ref == reference]

    def credential(self, op: str, reference: str) -> RegistryCredential | None:
        for c_op, ref, extra in self.calls:
            if c_op == op and ref == reference:
                assert not isinstance(extra, str)
                return extra
        raise AssertionError(f"No {op} of {reference}")


@pytest.fixture(autouse=True)
def isolated_docker_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Path:
    """Keep the tests away from the real user's Docker credentials."""
    docker_dir = tmp_path / "docker"
    monkeypatch.setenv("DOCKER_CONFIG", str(docker_dir))
    monkeypatch.setenv("HOME", str(tmp_path))
    return docker_dir


@pytest.fixture
def docker_config(isolated_docker_config: Path) -> Path:
    """Docker config file as written by ``docker login``."""

    def _auth(creds: str) -> str:
        return base64.b64encode(creds.encode()).decode()

    isolated_docker_config.mkdir(parents=True, exist_ok=True)
    config_file = isolated_docker_config / "config.json"
    config_file.write_text(
        json.dumps(
            {
                "auths": {
                    "https://index.docker.io/v1/": {
                        "auth": _auth("hubuser:hubpass")
                    },
                    "ghcr.io": {"auth": _auth("ghuser:ghpass")},
                }
            }
        )
    )
    return config_file


@pytest.fixture
def engine() -> FakeEngineClient:
    """Fake container engine."""
    return FakeEngineClient()


@pytest.fixture
def support_dir() -> Path:
    return Path(__file__).parent / "support"


@pytest.fixture
def config_file(support_dir: Path) -> Path:
    """JSON configuration file."""
    return support_dir / "config.json"
