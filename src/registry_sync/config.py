"""Configuration for registry synchronization."""

from __future__ import annotations

import datetime
import re
from pathlib import Path
from typing import Annotated, Self

import docker.auth
import httpx
import structlog
import yaml
from docker.errors import DockerException
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from safir.pydantic import SecondsTimedelta, validate_exactly_one_of

from .exceptions import ConfigError
from .models.credential import (
    AuthMatch,
    CredentialResolver,
    RegistryCredential,
)

DEFAULT_CONFIG = "config.json"


class RegistryAuth(BaseModel):
    """Authentication for one registry key.

    Either a username and password, or a docker-style ``auth`` blob
    (base64 of ``username:password``) copied out of a Docker config file.
    """

    username: Annotated[
        str | None,
        Field(
            title="Username",
            description="Username for authentication.",
            examples=["fbooth"],
        ),
    ] = None

    password: Annotated[
        SecretStr | None,
        Field(
            title="Password",
            description="Secret (password or token) for authentication.",
            examples=["hunter2"],
        ),
    ] = None

    auth: Annotated[
        str | None,
        Field(
            title="Auth",
            description=(
                "Base64-encoded username:password, as stored in the auths"
                " section of a Docker config file."
            ),
        ),
    ] = None

    _validate_options = model_validator(mode="after")(
        validate_exactly_one_of("password", "auth")
    )

    @model_validator(mode="after")
    def _validate_username(self) -> Self:
        if self.password is not None and not self.username:
            raise ValueError("username must be given with password")
        return self

    @field_validator("auth")
    @classmethod
    def _validate_auth(cls, v: str | None) -> str | None:
        if v is not None:
            # Raises ValueError for blobs that do not decode.
            RegistryCredential.from_auth("<auth>", v)
        return v

    def to_credential(self, key: str) -> RegistryCredential:
        if self.auth is not None:
            return RegistryCredential.from_auth(key, self.auth)
        password = self.password.get_secret_value() if self.password else ""
        return RegistryCredential.from_password(
            key, self.username or "", password
        )


class ImageSyncSpec(BaseModel):
    """One image to mirror."""

    model_config = ConfigDict(frozen=True)

    source: Annotated[
        str,
        Field(
            title="Source",
            description="Image reference to pull.",
            examples=["docker.io/library/alpine:3.20"],
            min_length=1,
        ),
    ]

    target: Annotated[
        str,
        Field(
            title="Target",
            description="Image reference to tag and push.",
            examples=["registry.example.com/mirror/alpine:3.20"],
            min_length=1,
        ),
    ]


class Config(BaseModel):
    """Configuration for the synchronization daemon.

    A loaded configuration is never modified.  The daemon replaces it
    wholesale when a reload succeeds.
    """

    model_config = ConfigDict(frozen=True)

    images: Annotated[
        list[ImageSyncSpec],
        Field(
            title="Images",
            description="Image pairs to mirror, in order.",
        ),
    ] = []

    auths: Annotated[
        dict[str, RegistryAuth] | None,
        Field(
            title="Registry auths",
            description=(
                "Credentials by registry key.  If empty or absent, the"
                " credentials in the local Docker config file are used."
            ),
        ),
    ] = None

    auth_match: Annotated[
        AuthMatch,
        Field(
            title="Auth match",
            description=(
                "How keys of auths are compared to image references: as a"
                " prefix, as a regular expression, or as a registry host."
            ),
            examples=[AuthMatch.PREFIX],
        ),
    ] = AuthMatch.PREFIX

    duration: Annotated[
        SecondsTimedelta,
        Field(
            title="Duration",
            description="Seconds to sleep between synchronization cycles.",
            examples=[3600],
        ),
    ] = datetime.timedelta(seconds=0)

    disable_prune: Annotated[
        bool,
        Field(
            title="Disable prune",
            description="Do not remove dangling local images after a cycle.",
        ),
    ] = False

    @field_validator("duration")
    @classmethod
    def _validate_duration(cls, v: datetime.timedelta) -> datetime.timedelta:
        if v < datetime.timedelta(0):
            raise ValueError("duration must not be negative")
        return v

    @model_validator(mode="after")
    def _validate_patterns(self) -> Self:
        if self.auth_match != AuthMatch.PATTERN or not self.auths:
            return self
        for key in self.auths:
            try:
                re.compile(key)
            except re.error as exc:
                raise ValueError(f"Bad auths pattern {key!r}: {exc}") from exc
        return self

    def credential_resolver(self) -> CredentialResolver:
        """Build the credential resolver for this configuration.

        Falls back to the local Docker credential store, matched by
        registry host, when no auths are configured.
        """
        if self.auths:
            creds = [v.to_credential(k) for k, v in self.auths.items()]
            return CredentialResolver(creds, match=self.auth_match)
        logger = structlog.get_logger(__name__)
        logger.debug("No auths found in config, loading Docker credentials")
        return CredentialResolver(
            load_credential_store(), match=AuthMatch.HOST
        )

    @classmethod
    def from_text(cls, text: str, location: str = "<string>") -> Self:
        """Parse a JSON (or YAML) configuration document.

        JSON is parsed by pydantic directly. Only a document that is not
        JSON at all goes through YAML, which rejects some valid JSON such as
        tab indentation.
        """
        try:
            return cls.model_validate_json(text)
        except ValidationError as exc:
            if not any(e["type"] == "json_invalid" for e in exc.errors()):
                raise ConfigError(location, str(exc)) from exc
        try:
            return cls.model_validate(yaml.safe_load(text))
        except yaml.YAMLError as exc:
            raise ConfigError(location, f"parse error: {exc}") from exc
        except ValidationError as exc:
            raise ConfigError(location, str(exc)) from exc

    @classmethod
    def from_file(cls, path: Path) -> Self:
        try:
            text = path.read_text()
        except OSError as exc:
            raise ConfigError(str(path), str(exc)) from exc
        return cls.from_text(text, location=str(path))

    @classmethod
    def from_url(cls, url: str, client: httpx.Client | None = None) -> Self:
        try:
            if client is None:
                r = httpx.get(url, follow_redirects=True)
            else:
                r = client.get(url)
            r.raise_for_status()
        except httpx.HTTPError as exc:
            raise ConfigError(url, str(exc)) from exc
        return cls.from_text(r.text, location=url)

    @classmethod
    def load(cls, location: str, client: httpx.Client | None = None) -> Self:
        """Load configuration from a local path or an HTTP(S) URL.

        Raises
        ------
        ConfigError
            Configuration could not be read, fetched, parsed or validated.
        """
        if location.startswith(("http://", "https://")):
            return cls.from_url(location, client=client)
        return cls.from_file(Path(location))


def load_credential_store(
    config_path: str | None = None,
) -> list[RegistryCredential]:
    """Read registry credentials from the local Docker config file.

    This is the file ``docker login`` writes: ``$DOCKER_CONFIG/config.json``
    or ``~/.docker/config.json``.  Only entries with a plain username and
    password are usable.  A missing or unreadable file yields no
    credentials.
    """
    logger = structlog.get_logger(__name__)
    try:
        store = docker.auth.load_config(config_path)
    except (DockerException, OSError, ValueError) as exc:
        logger.debug(f"Cannot read Docker credential store: {exc}")
        return []
    creds: list[RegistryCredential] = []
    for registry, entry in store.auths.items():
        username = entry.get("username")
        password = entry.get("password")
        if username is None or password is None:
            logger.debug(f"Skipping credential without password: {registry}")
            continue
        creds.append(
            RegistryCredential.from_password(registry, username, password)
        )
    logger.debug(f"Loaded {len(creds)} credentials from Docker config")
    return creds
