import json
import pytest  # type: ignore
import urllib3.exceptions  # type: ignore
from typing import Any, Dict, List, Tuple
from aptly_ops.api import ApiClient
from aptly_ops.aptly import PublishTarget, SigningConfig
from aptly_ops.exceptions import AptlyApiError, AptlyOpsError

URL = "http://aptly.example.com:8090/"


class FakeResponse:
    def __init__(self, status: int, data: Any = None) -> None:
        self.status = status
        if data is None:
            self.data = b""
        elif isinstance(data, bytes):
            self.data = data
        else:
            self.data = json.dumps(data).encode("utf-8")


class FakeHTTP:
    """Replaces urllib3.PoolManager, answers with queued responses"""

    def __init__(self) -> None:
        self.responses = []  # type: List[FakeResponse]
        self.requests = []  # type: List[Tuple[str, str, Dict[str, Any]]]

    def reply(self, status: int, data: Any = None) -> None:
        self.responses.append(FakeResponse(status, data))

    def request(self, method, url, body=None, headers=None):
        self.requests.append((method, url, json.loads(body) if body else None))
        return self.responses.pop(0)

    def request_encode_url(self, method, url, fields=None):
        self.requests.append((method, url, fields))
        return self.responses.pop(0)


@pytest.fixture
def http():
    return FakeHTTP()


@pytest.fixture
def aptly(http):
    client = ApiClient(URL, SigningConfig(gpgkey="7A26D0"))
    client.http = http
    return client


def test_mirror_list(aptly, http):
    http.reply(200, [{"Name": "sury", "ArchiveRoot": "https://packages.sury.org/php/"}])
    assert aptly.mirror_list() == ["sury"]
    assert http.requests == [("GET", URL + "api/mirrors", None)]


def test_snapshot_list(aptly, http):
    http.reply(
        200,
        [
            {
                "Name": "sury-20240101-00:00:00",
                "CreatedAt": "2024-01-01T00:00:00Z",
                "Description": "",
            }
        ],
    )
    snaps = aptly.snapshot_list()
    assert [snap.name for snap in snaps] == ["sury-20240101-00:00:00"]
    assert snaps[0].created_at is not None


def test_snapshot_packages(aptly, http):
    http.reply(200, ["Pamd64 php8.2 8.2.7-1 8db3e74b0a6ddfd3"])
    assert aptly.snapshot_packages("sury-1") == ["php8.2_8.2.7-1_amd64"]
    assert http.requests == [("GET", URL + "api/snapshots/sury-1/packages", None)]


def test_mirror_update(aptly, http):
    old = "Pamd64 php8.2 8.2.6-1 0000000000000001"
    new = "Pamd64 php8.2 8.2.7-1 0000000000000002"
    http.reply(200, [old])
    http.reply(200, {})
    http.reply(200, [old, new])
    result = aptly.mirror_update("sury")
    assert result.updated == ["php8.2_8.2.7-1_amd64"]
    assert result.output == [
        "Mirror sury updated, 1 new package(s)",
        "Added php8.2_8.2.7-1_amd64",
    ]
    assert [req[:2] for req in http.requests] == [
        ("GET", URL + "api/mirrors/sury/packages"),
        ("PUT", URL + "api/mirrors/sury"),
        ("GET", URL + "api/mirrors/sury/packages"),
    ]


def test_mirror_update_no_updates(aptly, http):
    http.reply(200, [])
    http.reply(200, {})
    http.reply(200, None)
    assert aptly.mirror_update("sury").updated == []


def test_snapshot_create(aptly, http):
    http.reply(201, {"Name": "sury-1", "Description": "Snapshot from mirror [sury]"})
    snap = aptly.snapshot_create_from_mirror("sury", "sury-1")
    assert snap.name == "sury-1"
    assert http.requests == [("POST", URL + "api/mirrors/sury/snapshots", {"Name": "sury-1"})]


def test_snapshot_merge(aptly, http):
    http.reply(200, ["Pamd64 a 1 01", "Pamd64 b 1 02"])
    http.reply(200, ["Pamd64 a 2 03", "Pamd64 b 1 02"])
    http.reply(201, {"Name": "sury-merged"})
    aptly.snapshot_merge("sury-merged", ["sury-1", "sury-2"])
    method, url, body = http.requests[-1]
    assert (method, url) == ("POST", URL + "api/snapshots")
    assert body["Name"] == "sury-merged"
    assert body["SourceSnapshots"] == ["sury-1", "sury-2"]
    assert body["PackageRefs"] == ["Pamd64 a 1 01", "Pamd64 a 2 03", "Pamd64 b 1 02"]


def test_publish_switch(aptly, http):
    http.reply(200, {})
    aptly.publish_switch(PublishTarget("bullseye", "ppa/sury"), "sury-1")
    assert http.requests == [
        (
            "PUT",
            URL + "api/publish/ppa_sury/bullseye",
            {
                "Signing": {"Batch": True, "GpgKey": "7A26D0"},
                "Snapshots": [{"Component": "main", "Name": "sury-1"}],
            },
        )
    ]


def test_snapshot_delete(aptly, http):
    http.reply(200, {})
    http.reply(200, {})
    aptly.snapshot_delete("sury-1")
    aptly.snapshot_delete("sury-2", force=True)
    assert http.requests == [
        ("DELETE", URL + "api/snapshots/sury-1", None),
        ("DELETE", URL + "api/snapshots/sury-2", {"force": "1"}),
    ]


def test_api_error(aptly, http):
    http.reply(409, {"error": "unable to drop: snapshot is published"})
    with pytest.raises(AptlyApiError) as excinfo:
        aptly.snapshot_delete("sury-1")
    assert excinfo.value.status == 409
    assert str(excinfo.value) == "unable to drop: snapshot is published"


def test_connection_error(aptly, monkeypatch):
    def request(*args, **kwargs):
        raise urllib3.exceptions.MaxRetryError(None, URL + "api/mirrors")

    monkeypatch.setattr(aptly.http, "request", request)
    with pytest.raises(AptlyOpsError) as excinfo:
        aptly.mirror_list()
    assert str(excinfo.value) == f"Failed to communicate with aptly API at {URL}"


def test_root_dir_is_unknown(aptly):
    assert aptly.root_dir() is None
