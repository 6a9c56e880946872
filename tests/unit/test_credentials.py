"""Tests for the credential store."""

import json
from pathlib import Path

import pytest

from iotdeploy.credentials import DOCKER_COMPOSE_KEY, CredentialStore, read_username_and_password
from iotdeploy.domain import ConfigError, Credentials


def _write(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.mark.unit
def test_from_file_resolves_each_key(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "credentials.json",
        [
            {"_workstation._tcp": {"username": "pi", "password": "raspberry"}},
            {"svc:latest": {"username": "robot", "password": "token"}},
        ],
    )

    store = CredentialStore.from_file(path)

    assert store.read_from_file
    assert store.resolve("_workstation._tcp") == Credentials("pi", "raspberry")
    assert store.resolve("svc:latest").username == "robot"
    assert store.keys() == ["_workstation._tcp", "svc:latest"]


@pytest.mark.unit
def test_set_then_resolve_returns_credentials() -> None:
    store = CredentialStore()
    credentials = Credentials("pi", "secret")

    store.set("_workstation._tcp", credentials)

    assert store.resolve("_workstation._tcp") == credentials
    assert "_workstation._tcp" in store


@pytest.mark.unit
def test_set_appends_instead_of_replacing() -> None:
    store = CredentialStore()
    store.set("key", Credentials("a", "1"))
    store.set("key", Credentials("b", "2"))

    assert len(store) == 2
    with pytest.raises(ConfigError, match="2 entries"):
        store.resolve("key")


@pytest.mark.unit
def test_duplicate_compose_key_in_file_is_ambiguous(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "credentials.json",
        [
            {DOCKER_COMPOSE_KEY: {"username": "a", "password": "1"}},
            {DOCKER_COMPOSE_KEY: {"username": "b", "password": "2"}},
        ],
    )
    store = CredentialStore.from_file(path)

    with pytest.raises(ConfigError):
        store.resolve(DOCKER_COMPOSE_KEY)


@pytest.mark.unit
def test_missing_key_raises_config_error() -> None:
    with pytest.raises(ConfigError, match="No entry"):
        CredentialStore().resolve("unknown")


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"key": {"username": "pi", "password": "x"}}),
        json.dumps([{"a": {"username": "pi"}, "b": {"username": "pi"}}]),
        json.dumps([{"a": {"username": 3, "password": "x"}}]),
        json.dumps([{"a": "pi:secret"}]),
    ],
)
def test_malformed_file_aborts_load(tmp_path: Path, content: str) -> None:
    path = tmp_path / "credentials.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        CredentialStore.from_file(path)


@pytest.mark.unit
def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        CredentialStore.from_file(tmp_path / "missing.json")


@pytest.mark.unit
def test_obtain_prompts_once_and_keeps_answer_in_memory() -> None:
    asked = []

    def prompter(key: str, allow_empty: bool) -> Credentials:
        asked.append((key, allow_empty))
        return Credentials("pi", "raspberry")

    store = CredentialStore(prompter=prompter)

    first = store.obtain("_workstation._tcp")
    second = store.obtain("_workstation._tcp")

    assert first == second == Credentials("pi", "raspberry")
    assert asked == [("_workstation._tcp", False)]


@pytest.mark.unit
def test_obtain_on_file_store_never_prompts(tmp_path: Path) -> None:
    path = _write(tmp_path / "credentials.json", [])

    def prompter(key: str, allow_empty: bool) -> Credentials:
        raise AssertionError("must not prompt")

    store = CredentialStore.from_file(path)
    store._prompter = prompter

    with pytest.raises(ConfigError):
        store.obtain("_workstation._tcp")


@pytest.mark.unit
def test_obtain_rejects_empty_device_username_but_allows_anonymous_registry(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "credentials.json",
        [
            {"_workstation._tcp": {"username": "", "password": "pw"}},
            {DOCKER_COMPOSE_KEY: {"username": "", "password": ""}},
        ],
    )
    store = CredentialStore.from_file(path)

    with pytest.raises(ConfigError, match="non-empty username"):
        store.obtain("_workstation._tcp")
    assert store.obtain(DOCKER_COMPOSE_KEY, allow_empty=True).is_anonymous


@pytest.mark.unit
def test_passwords_are_not_in_repr() -> None:
    store = CredentialStore([{"key": Credentials("pi", "hunter2")}])

    assert "hunter2" not in repr(store)
    assert "hunter2" not in repr(store.resolve("key"))


@pytest.mark.unit
def test_read_username_and_password_uses_prompts() -> None:
    answers = iter(["", "pi"])

    credentials = read_username_and_password(
        "_workstation._tcp",
        prompt=lambda message: next(answers),
        secret_prompt=lambda message: "raspberry",
    )

    assert credentials == Credentials("pi", "raspberry")


@pytest.mark.unit
def test_read_username_and_password_allows_anonymous() -> None:
    credentials = read_username_and_password(
        "registry",
        allow_empty=True,
        prompt=lambda message: "",
        secret_prompt=lambda message: pytest.fail("no password for anonymous login"),
    )

    assert credentials.is_anonymous
