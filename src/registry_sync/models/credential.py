"""Registry credentials, and how to choose one for an image reference."""

import base64
import binascii
import re
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Self

from docker.auth import (
    convert_to_hostname,
    decode_auth,
    resolve_index_name,
    resolve_repository_name,
)
from docker.errors import InvalidRepository
from pydantic import SecretStr


class AuthMatch(Enum):
    """How the keys of the ``auths`` mapping are compared to image
    references.
    """

    PREFIX = "prefix"
    PATTERN = "pattern"
    HOST = "host"


def registry_host(reference: str) -> str | None:
    """Return the registry host of an image reference.

    References without an explicit registry belong to Docker Hub, which is
    reported as ``docker.io``.  Returns `None` if the reference cannot be
    parsed at all.
    """
    try:
        host, _ = resolve_repository_name(reference)
    except (InvalidRepository, IndexError):
        return None
    return host


def normalize_registry_key(key: str) -> str:
    """Turn a registry key (hostname or index URL) into a hostname."""
    return resolve_index_name(convert_to_hostname(key))


@dataclass(frozen=True)
class RegistryCredential:
    """A credential for one registry key.

    ``token`` is the base64 ``username:password`` blob in the form Docker
    keeps in its own config file.  The engine itself wants the decoded
    username and password, which `auth_config` provides.
    """

    key: str
    username: str
    password: SecretStr = field(repr=False)
    token: str = field(repr=False)

    @classmethod
    def from_password(cls, key: str, username: str, password: str) -> Self:
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        return cls(
            key=key,
            username=username,
            password=SecretStr(password),
            token=token,
        )

    @classmethod
    def from_auth(cls, key: str, auth: str) -> Self:
        """Build a credential from a docker-style ``auth`` blob.

        The blob is kept as the token unmodified.

        Raises
        ------
        ValueError
            The blob is not base64 or does not contain ``username:password``.
        """
        try:
            username, password = decode_auth(auth)
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise ValueError(f"Malformed auth for {key}: {exc}") from exc
        return cls(
            key=key,
            username=username,
            password=SecretStr(password),
            token=auth,
        )

    def auth_config(self) -> dict[str, str]:
        """Credential in the form the engine client expects."""
        return {
            "username": self.username,
            "password": self.password.get_secret_value(),
        }


class CredentialMatcher:
    """Decides whether a registry key applies to an image reference."""

    @abstractmethod
    def matches(self, key: str, reference: str) -> bool: ...


class PrefixMatcher(CredentialMatcher):
    """Key is a plain prefix of the reference, e.g. ``ghcr.io/owner``."""

    def matches(self, key: str, reference: str) -> bool:
        return reference.startswith(key)


class PatternMatcher(CredentialMatcher):
    """Key is a regular expression matched at the start of the reference."""

    def matches(self, key: str, reference: str) -> bool:
        return re.match(key, reference) is not None


class HostMatcher(CredentialMatcher):
    """Key names exactly the registry host of the reference.

    Keys may be bare hostnames or index URLs as found in Docker's config
    file, such as ``https://index.docker.io/v1/``.
    """

    def matches(self, key: str, reference: str) -> bool:
        host = registry_host(reference)
        return host is not None and host == normalize_registry_key(key)


MATCHERS: dict[AuthMatch, CredentialMatcher] = {
    AuthMatch.PREFIX: PrefixMatcher(),
    AuthMatch.PATTERN: PatternMatcher(),
    AuthMatch.HOST: HostMatcher(),
}


class CredentialResolver:
    """Find the credential to use for an image reference.

    Credentials are tried in the order given and the first whose key
    matches wins.  No match means the engine call is made anonymously.
    Lookups never modify the resolver, so one instance may be shared by
    any number of threads.

    Parameters
    ----------
    credentials
        Credentials, in configuration order.
    match
        Strategy used to compare keys to references.
    """

    def __init__(
        self,
        credentials: list[RegistryCredential] | None = None,
        match: AuthMatch = AuthMatch.PREFIX,
    ) -> None:
        self._credentials = tuple(credentials or ())
        self._match = match
        self._matcher = MATCHERS[match]

    @property
    def match(self) -> AuthMatch:
        return self._match

    @property
    def credentials(self) -> tuple[RegistryCredential, ...]:
        return self._credentials

    def resolve(self, reference: str) -> RegistryCredential | None:
        for cred in self._credentials:
            if self._matcher.matches(cred.key, reference):
                return cred
        return None

    def __len__(self) -> int:
        return len(self._credentials)
