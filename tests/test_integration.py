"""End-to-end cycles on real timer threads, with rsync and with a copying mirror."""

import shutil
import time
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fakes import CopyMirror, FakeMaintenance, FakeWatcher

from simple_deploy.config import Config, SchedulerConfig
from simple_deploy.mirror import RsyncMirror
from simple_deploy.scheduler import Mirror, SyncScheduler

FAST = SchedulerConfig(sync_delay=0.01, maintenance_delay=0.05)


@pytest.fixture(
    params=[
        pytest.param(
            "rsync",
            marks=pytest.mark.skipif(
                shutil.which("rsync") is None, reason="rsync is not installed"
            ),
        ),
        "copy",
    ]
)
def mirror(request: pytest.FixtureRequest) -> Mirror:
    return RsyncMirror() if request.param == "rsync" else CopyMirror()


@pytest.fixture
def tree(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> tuple[Path, Path]:
    """./foo populated with a file, a folder, node_modules and .git; ./bar empty."""
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "foo"
    target = tmp_path / "bar"
    (source / "my-folder").mkdir(parents=True)
    (source / "node_modules" / "left-pad").mkdir(parents=True)
    (source / ".git").mkdir()
    (source / "file.txt").touch()
    (source / "my-folder" / "anotherfile.txt").touch()
    (source / "node_modules" / "left-pad" / "index.js").touch()
    (source / ".git" / "HEAD").touch()
    target.mkdir()
    return source, target


@pytest.fixture
def scheduler(tree: tuple[Path, Path], mirror: Mirror) -> Iterator[SyncScheduler]:
    s = SyncScheduler(
        "./foo",
        "./bar",
        Config(scheduler=FAST),
        mirror=mirror,
        maintenance=FakeMaintenance(),
        watcher=FakeWatcher(),
    )
    yield s
    s.stop()


def _eventually(check: Callable[[], bool], timeout: float = 10) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if check():
            return True
        time.sleep(0.05)
    return check()


def test_first_cycle_mirrors_tree_and_runs_maintenance_once(
    scheduler: SyncScheduler, tree: tuple[Path, Path]
) -> None:
    _, target = tree

    scheduler.watch()

    assert scheduler.wait_settled(timeout=10)
    assert (target / "file.txt").exists()
    assert (target / "my-folder" / "anotherfile.txt").exists()
    assert not (target / "node_modules").exists()
    assert not (target / ".git").exists()
    assert scheduler.maintenance.calls == [Path.cwd() / "bar"]
    assert not scheduler.is_processing()


def test_added_file_is_mirrored_on_next_cycle(
    scheduler: SyncScheduler, tree: tuple[Path, Path]
) -> None:
    source, target = tree
    scheduler.watch()
    assert scheduler.wait_settled(timeout=10)

    (source / "file2.txt").write_text("new")
    scheduler.on_change("created", "file2.txt")

    assert scheduler.wait_settled(timeout=10)
    assert (target / "file2.txt").read_text() == "new"
    assert len(scheduler.maintenance.calls) == 2


def test_removed_folder_is_deleted_from_target(
    scheduler: SyncScheduler, tree: tuple[Path, Path]
) -> None:
    source, target = tree
    scheduler.watch()
    assert scheduler.wait_settled(timeout=10)
    assert (target / "my-folder").exists()

    shutil.rmtree(source / "my-folder")
    scheduler.on_change("deleted", "my-folder")

    assert scheduler.wait_settled(timeout=10)
    assert not (target / "my-folder").exists()
    assert (target / "file.txt").exists()


def test_filesystem_changes_drive_the_scheduler(
    tree: tuple[Path, Path], mirror: Mirror
) -> None:
    """Verifies the full chain with the real watcher: edit in source, see in target."""
    source, target = tree
    maintenance = FakeMaintenance()
    scheduler = SyncScheduler(
        source.resolve(),
        target.resolve(),
        Config(scheduler=FAST),
        mirror=mirror,
        maintenance=maintenance,
    )
    scheduler.watch()
    try:
        assert scheduler.wait_settled(timeout=10)

        (source / "file3.txt").write_text("watched")

        assert _eventually(lambda: (target / "file3.txt").exists())
        assert scheduler.wait_settled(timeout=10)
        assert (target / "file3.txt").read_text() == "watched"
    finally:
        scheduler.stop()
