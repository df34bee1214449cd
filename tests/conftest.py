import pytest
from datetime import datetime
from typing import Dict, List, Sequence
from aptly_ops.aptly import Client, PublishTarget, Snapshot, UpdateResult
from aptly_ops.config import Config
from aptly_ops.exceptions import AptlyCommandError

MUTATING = ("mirror_update", "snapshot_create", "snapshot_merge", "publish_switch", "snapshot_delete")


class FakeClient(Client):
    """
    In memory aptly. Every call is recorded in calls, operation
    names listed in fail raise AptlyCommandError
    """

    def __init__(self, mirrors=(), snapshots=(), packages=None, updates=None):
        self.mirrors = list(mirrors)
        self.snapshots = list(snapshots)
        self.packages = packages or {}  # type: Dict[str, List[str]]
        self.updates = updates or {}  # type: Dict[str, List[str]]
        self.calls = []  # type: List[tuple]
        self.fail = {}  # type: Dict[str, str]

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise AptlyCommandError(["aptly", name], 1, self.fail[name])

    def called(self, name):
        return [call for call in self.calls if call[0] == name]

    @property
    def mutating_calls(self):
        return [call for call in self.calls if call[0] in MUTATING]

    def mirror_list(self) -> List[str]:
        self._call("mirror_list")
        return list(self.mirrors)

    def snapshot_list(self) -> List[Snapshot]:
        self._call("snapshot_list")
        return [Snapshot(name) for name in self.snapshots]

    def snapshot_packages(self, snap_name: str) -> List[str]:
        self._call("snapshot_packages", snap_name)
        return list(self.packages.get(snap_name, []))

    def mirror_update(self, mirror_name: str) -> UpdateResult:
        self._call("mirror_update", mirror_name)
        updated = self.updates.get(mirror_name, [])
        output = [f"Downloading & parsing package files for {mirror_name}..."]
        output.extend(
            f"Success downloading http://deb.example.com/pool/main/{pkg}" for pkg in updated
        )
        return UpdateResult(output=output, updated=updated)

    def snapshot_create_from_mirror(self, mirror_name: str, snapshot_name: str) -> Snapshot:
        self._call("snapshot_create", mirror_name, snapshot_name)
        self.snapshots.append(snapshot_name)
        return Snapshot(snapshot_name)

    def snapshot_merge(self, destination: str, sources: Sequence[str]) -> Snapshot:
        self._call("snapshot_merge", destination, tuple(sources))
        self.snapshots.append(destination)
        return Snapshot(destination)

    def publish_switch(self, target: PublishTarget, snapshot_name: str) -> None:
        self._call("publish_switch", target, snapshot_name)

    def snapshot_delete(self, snap_name: str, force: bool = False) -> None:
        self._call("snapshot_delete", snap_name, force)
        self.snapshots.remove(snap_name)


class FakeMailer:
    def __init__(self):
        self.sent = []  # type: List[tuple]

    def send(self, recipients, subject, body):
        self.sent.append((tuple(recipients), subject, body))


class Clock:
    """Returns given times one by one, repeating the last one"""

    def __init__(self, *times: datetime) -> None:
        self.times = list(times)

    def __call__(self) -> datetime:
        if len(self.times) > 1:
            return self.times.pop(0)
        return self.times[0]


@pytest.fixture
def fake_mailer():
    return FakeMailer()


@pytest.fixture
def config():
    return Config(mail_recipients=("ops@example.com",), admin=("admin@example.com",))
