"""Container engine client for the Docker daemon.

This talks to the engine through the low-level ``docker.APIClient`` so that
we can drain the streamed progress output of pulls and pushes ourselves and
catch the errors the engine reports inside it.
"""

from collections.abc import Iterator
from typing import Any, Self

import docker
import structlog
from docker.errors import DockerException
from docker.utils import parse_repository_tag
from requests.exceptions import RequestException

from ..exceptions import EngineError, EngineStreamError
from ..models.credential import RegistryCredential
from ..models.image import LocalImage
from .engine import ContainerEngineClient

_ENGINE_ERRORS = (DockerException, RequestException)


class DockerEngineClient(ContainerEngineClient):
    """Client for the local (or ``DOCKER_HOST``) Docker daemon.

    Parameters
    ----------
    api
        Low-level Docker API client.
    """

    def __init__(self, api: docker.APIClient) -> None:
        self._api = api
        self._logger = structlog.get_logger(__name__)

    @classmethod
    def from_env(cls) -> Self:
        """Connect using the ambient ``DOCKER_*`` environment.

        The API version is negotiated with the daemon, which also verifies
        that the daemon is reachable. Requests have no timeout, so a pull or
        push whose progress stream stalls blocks rather than failing.

        Raises
        ------
        EngineError
            The daemon could not be reached.
        """
        try:
            client = docker.from_env(version="auto", timeout=None)
        except _ENGINE_ERRORS as exc:
            raise EngineError(
                f"Failed to create Docker client: {exc}"
            ) from exc
        return cls(client.api)

    def pull(
        self, reference: str, credential: RegistryCredential | None = None
    ) -> None:
        try:
            stream = self._api.pull(
                reference,
                stream=True,
                decode=True,
                auth_config=self._auth_config(credential),
            )
            self._drain(stream, reference)
        except _ENGINE_ERRORS as exc:
            raise EngineError(str(exc)) from exc

    def tag(self, source: str, target: str) -> None:
        repository, tag = parse_repository_tag(target)
        try:
            tagged = self._api.tag(source, repository, tag=tag)
        except _ENGINE_ERRORS as exc:
            raise EngineError(str(exc)) from exc
        if not tagged:
            raise EngineError(f"engine refused to tag {source} as {target}")

    def push(
        self, reference: str, credential: RegistryCredential | None = None
    ) -> None:
        try:
            stream = self._api.push(
                reference,
                stream=True,
                decode=True,
                auth_config=self._auth_config(credential),
            )
            self._drain(stream, reference)
        except _ENGINE_ERRORS as exc:
            raise EngineError(str(exc)) from exc

    def list_images(self) -> list[LocalImage]:
        try:
            images = self._api.images(all=True)
        except _ENGINE_ERRORS as exc:
            raise EngineError(str(exc)) from exc
        return [LocalImage.from_json(x) for x in images]

    def remove_image(self, image_id: str) -> None:
        try:
            self._api.remove_image(image_id, force=True, noprune=False)
        except _ENGINE_ERRORS as exc:
            raise EngineError(str(exc)) from exc

    def close(self) -> None:
        self._api.close()

    @staticmethod
    def _auth_config(
        credential: RegistryCredential | None,
    ) -> dict[str, str]:
        # An empty auth config is sent as-is; None would make the client
        # fall back to whatever it finds in ~/.docker/config.json.
        if credential is None:
            return {}
        return credential.auth_config()

    def _drain(self, stream: Iterator[dict[str, Any]], reference: str) -> None:
        """Read a progress stream to the end, raising on reported errors.

        The stream is read to the end even after an error so that the
        client reaches end-of-response and releases the connection. Only
        the first reported error is raised.
        """
        error = None
        try:
            for message in stream:
                if message.get("error"):
                    error = error or message["error"]
                elif error is not None:
                    continue
                elif "status" in message and not message.get("progressDetail"):
                    self._logger.debug(
                        message["status"],
                        reference=reference,
                        layer=message.get("id"),
                    )
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
        if error:
            raise EngineStreamError(error)
