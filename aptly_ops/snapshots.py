"""
Naming, ordering and rotation of mirror snapshots.

Snapshots of a mirror are named "<mirror>-<timestamp>". Plain snapshots use
PLAIN_TS_FORMAT, snapshots produced by merging use MERGED_TS_FORMAT, so a
merged snapshot created within the same second as a plain one gets
a distinct name.
"""
import re
from datetime import datetime
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Any

PLAIN_TS_FORMAT = "%Y%m%d-%H:%M:%S"
MERGED_TS_FORMAT = "%Y%m%d-%H%M%S"

TS_REGEXP = re.compile(r"(\d{8}-\d{2}(:?)\d{2}(:?)\d{2})$")


class SnapshotName(NamedTuple):
    """Snapshot name split into mirror and timestamp"""

    repository: str
    timestamp: datetime
    merged: bool
    name: str

    @property
    def sort_key(self):
        return (self.timestamp, self.merged, self.name)


def snapshot_name(repository: str, when: datetime, merged: bool = False) -> str:
    fmt = MERGED_TS_FORMAT if merged else PLAIN_TS_FORMAT
    return f"{repository}-{when.strftime(fmt)}"


def parse_snapshot_name(repository: str, name: str) -> Optional[SnapshotName]:
    """
    Return SnapshotName if name is a snapshot of repository, None otherwise.
    Snapshots of "sury" and "sury-bullseye" are told apart since suffix
    after the repository name must be a timestamp
    """
    if not name.startswith(repository + "-"):
        return None
    match = TS_REGEXP.fullmatch(name, len(repository) + 1)
    if not match:
        return None
    stamp, sep1, sep2 = match.groups()
    if sep1 != sep2:
        return None
    merged = not sep1
    try:
        timestamp = datetime.strptime(
            stamp, MERGED_TS_FORMAT if merged else PLAIN_TS_FORMAT
        )
    except ValueError:
        return None
    return SnapshotName(repository, timestamp, merged, name)


def repository_snapshots(repository: str, names: Iterable[str]) -> List[SnapshotName]:
    """Return snapshots of repository sorted from the oldest to the newest"""
    parsed = (parse_snapshot_name(repository, name) for name in names)
    return sorted(
        (snap for snap in parsed if snap is not None), key=lambda s: s.sort_key
    )


def rotate(
    key_func: Callable[[Any], str], sort_func: Callable[[Any], Any], n: int, seq: Iterable,
) -> List[Any]:
    """
    Returns items in seq to rotate according to configured policy.
    seq is divided in groups by key_func. Then items in every group
    are sorted by key set by sort_func in ascending order and last abs(n)
    items are selected. If n >= 0 the rest of items are returned for a group.
    If n < 0 these items are returned for a group.
    """
    h = {}  # type: Dict[str, List[Any]]
    for item in seq:
        h.setdefault(key_func(item), []).append(item)
    for k, v in h.items():
        v.sort(key=sort_func)
        N = min(len(v), abs(n))
        h[k] = v[: len(v) - N] if n >= 0 else v[len(v) - N :]
    return list(sum(h.values(), []))


def snapshots_to_drop(repository: str, names: Iterable[str], keep: int) -> List[str]:
    """Return names of snapshots of repository outside of the retention window, oldest first"""
    if keep < 0:
        raise ValueError("number of snapshots to keep can't be negative")
    old = rotate(
        lambda s: s.repository,
        lambda s: s.sort_key,
        keep,
        repository_snapshots(repository, names),
    )
    return [snap.name for snap in old]


def last_two(repository: str, names: Iterable[str]) -> Optional[List[str]]:
    """Return two latest snapshots of repository, older first, or None if there are less"""
    snaps = repository_snapshots(repository, names)
    if len(snaps) < 2:
        return None
    return [snap.name for snap in snaps[-2:]]
