"""Credential storage for device logins and container registries."""

from __future__ import annotations

import getpass
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..domain import ConfigError, Credentials

logger = logging.getLogger(__name__)

DOCKER_COMPOSE_KEY = "docker-compose"

Prompt = Callable[[str], str]
Prompter = Callable[[str, bool], Credentials]


class CredentialStore:
    """
    Ordered list of single-key credential mappings.

    set() always appends: a key that ends up in two mappings is reported by
    resolve() instead of being silently replaced.
    """

    def __init__(
        self,
        mappings: list[dict[str, Credentials]] | None = None,
        *,
        read_from_file: bool = False,
        prompter: Prompter | None = None,
    ) -> None:
        self._storage: list[dict[str, Credentials]] = list(mappings or [])
        self.read_from_file = read_from_file
        self._prompter = prompter or _prompt_for

    @classmethod
    def from_file(cls, path: str | Path) -> CredentialStore:
        """
        Load the store from a JSON file.

        The file holds an array of objects, each mapping one key to
        {"username": ..., "password": ...}. Any problem with the file aborts
        the load; a partially read store is never returned.

        Raises:
            ConfigError: If the file is missing, unreadable or malformed
        """
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Failed to read credential file {path}: {exc}") from exc

        if not isinstance(data, list):
            raise ConfigError(f"Credential file {path} must contain a JSON array")

        mappings = []
        for index, entry in enumerate(data):
            if not isinstance(entry, dict) or len(entry) != 1:
                raise ConfigError(
                    f"Credential file {path}: entry {index} must be an object with exactly one key"
                )
            key, value = next(iter(entry.items()))
            mappings.append({key: _parse_credentials(value, f"{path}: entry '{key}'")})

        logger.info("Loaded %s credential entries from %s", len(mappings), path)
        return cls(mappings, read_from_file=True)

    def resolve(self, key: str) -> Credentials:
        """
        Return the credentials stored under key.

        Raises:
            ConfigError: If no mapping or more than one mapping holds the key
        """
        matches = [mapping[key] for mapping in self._storage if key in mapping]
        if not matches:
            raise ConfigError(f"No entry was found for key '{key}'. Please check your config file.")
        if len(matches) > 1:
            raise ConfigError(
                f"Found {len(matches)} entries for key '{key}'. "
                "The config file should only contain unique entries."
            )
        return matches[0]

    def obtain(self, key: str, *, allow_empty: bool = False) -> Credentials:
        """
        Resolve key, asking on the terminal when it is missing.

        Only an in-memory store prompts, and only once per key: the answer is
        kept for the rest of the run but never written to disk. A store loaded
        from a file behaves like resolve().

        Raises:
            ConfigError: If the stored username is empty and allow_empty is not set
        """
        if self.read_from_file or key in self:
            credentials = self.resolve(key)
            if not credentials.username and not allow_empty:
                raise ConfigError(f"The entry for key '{key}' needs a non-empty username.")
            return credentials
        credentials = self._prompter(key, allow_empty)
        self.set(key, credentials)
        return credentials

    def set(self, key: str, credentials: Credentials) -> None:
        self._storage.append({key: credentials})

    def keys(self) -> list[str]:
        return [key for mapping in self._storage for key in mapping]

    def __contains__(self, key: object) -> bool:
        return any(key in mapping for mapping in self._storage)

    def __len__(self) -> int:
        return len(self._storage)

    def __repr__(self) -> str:
        return f"CredentialStore(keys={self.keys()!r}, read_from_file={self.read_from_file})"


def _parse_credentials(value: Any, where: str) -> Credentials:
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be an object with username and password")
    username = value.get("username")
    password = value.get("password", "")
    if not isinstance(username, str) or not isinstance(password, str):
        raise ConfigError(f"{where} needs string 'username' and 'password' fields")
    return Credentials(username=username, password=password)


def read_username_and_password(
    reason: str,
    *,
    allow_empty: bool = False,
    prompt: Prompt = input,
    secret_prompt: Prompt = getpass.getpass,
) -> Credentials:
    """
    Ask for a username and password on the terminal.

    With allow_empty an empty username is accepted and returned as anonymous
    credentials (used for public registries).
    """
    username = prompt(f"The username for {reason}: ").strip()
    while not username and not allow_empty:
        username = prompt(f"The username for {reason}: ").strip()
    if not username:
        return Credentials.empty()
    password = secret_prompt(f"The password for {reason}: ")
    return Credentials(username=username, password=password)


def _prompt_for(key: str, allow_empty: bool) -> Credentials:
    return read_username_and_password(key, allow_empty=allow_empty)


__all__ = ["DOCKER_COMPOSE_KEY", "CredentialStore", "read_username_and_password"]
