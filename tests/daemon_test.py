"""Test the synchronization loop."""

import json
from pathlib import Path

import pytest
import structlog
from conftest import FakeEngineClient

from registry_sync.config import Config
from registry_sync.factory import Factory
from registry_sync.models.image import LocalImage
from registry_sync.services.daemon import SyncDaemon


def _write_config(path: Path, **kwargs: object) -> str:
    doc = {
        "images": [{"source": "a/x:1", "target": "b/x:1"}],
        "duration": 60,
        "disable_prune": False,
    }
    doc.update(kwargs)
    path.write_text(json.dumps(doc))
    return str(path)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def factory(engine: FakeEngineClient) -> Factory:
    return Factory(engine, structlog.get_logger(__name__))


def _daemon(
    factory: Factory, location: str, sleeps: list[float]
) -> SyncDaemon:
    return factory.create_daemon(
        Config.load(location), location, sleep=sleeps.append
    )


def test_cycle(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    """Pull, tag, push, prune, then sleep for the configured duration."""
    engine.images = [LocalImage(id="sha256:old", size=10)]
    location = _write_config(tmp_path / "config.json")
    daemon = _daemon(factory, location, sleeps)
    daemon.run(max_cycles=2)
    ops = [op for op, _, _ in engine.calls]
    assert ops[:5] == ["pull", "tag", "push", "list", "remove"]
    assert ops[5:] == ["pull", "tag", "push", "list"]
    assert sleeps == [60.0]


def test_single_cycle_does_not_sleep(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    location = _write_config(tmp_path / "config.json")
    result = _daemon(factory, location, sleeps).run(max_cycles=1)
    assert result.ok
    assert result.prune is not None
    assert sleeps == []


def test_prune_disabled(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    engine.images = [LocalImage(id="sha256:old")]
    location = _write_config(tmp_path / "config.json", disable_prune=True)
    result = _daemon(factory, location, sleeps).run_cycle()
    assert result.prune is None
    assert [op for op, _, _ in engine.calls] == ["pull", "tag", "push"]


def test_prune_keeps_configured_images(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    """An untagged image pulled by a configured digest survives."""
    source = "ghcr.io/a/x@sha256:1234"
    engine.images = [
        LocalImage(id="sha256:pinned", digests=[source]),
        LocalImage(id="sha256:stale"),
    ]
    location = _write_config(
        tmp_path / "config.json",
        images=[{"source": source, "target": "b/x:pinned"}],
    )
    result = _daemon(factory, location, sleeps).run_cycle()
    assert result.prune is not None
    assert result.prune.deleted == ["sha256:stale"]


def test_prune_error_does_not_stop_loop(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    engine.list_error = "daemon went away"
    location = _write_config(tmp_path / "config.json")
    _daemon(factory, location, sleeps).run(max_cycles=3)
    assert sleeps == [60.0, 60.0]
    assert engine.ops("b/x:1") == ["push", "push", "push"]


def test_reload(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    """A good reload takes effect for the next cycle and its sleep."""
    config_file = tmp_path / "config.json"
    location = _write_config(config_file)
    daemon = _daemon(factory, location, sleeps)
    _write_config(
        config_file,
        images=[{"source": "a/y:2", "target": "b/y:2"}],
        duration=5,
    )
    daemon.run(max_cycles=2)
    assert engine.ops("a/x:1") == ["pull", "tag"]
    assert engine.ops("a/y:2") == ["pull", "tag"]
    assert sleeps == [5.0]


def test_failed_reload_keeps_config(
    tmp_path: Path,
    engine: FakeEngineClient,
    factory: Factory,
    sleeps: list[float],
) -> None:
    """A config that cannot be loaded leaves the previous one in effect."""
    config_file = tmp_path / "config.json"
    location = _write_config(
        config_file,
        auths={"registry.example.com": {"username": "u", "password": "p"}},
    )
    daemon = _daemon(factory, location, sleeps)
    before = daemon.config
    config_file.write_text('{"images": [{"source": "a/x:1"}]}')
    assert daemon.reload() is False
    assert daemon.config is before

    config_file.unlink()
    daemon.run(max_cycles=2)
    assert daemon.config == before
    assert sleeps == [60.0]
    assert engine.ops("a/x:1") == ["pull", "tag", "pull", "tag"]


def test_factory_close(engine: FakeEngineClient, factory: Factory) -> None:
    factory.close()
    assert engine.closed
