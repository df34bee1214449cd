"""This module contains aptly client working over aptly REST API"""
import json
import logging
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Sequence, Union, cast
import urllib3  # type: ignore # https://github.com/urllib3/urllib3/issues/1897
import urllib3.exceptions  # type: ignore
from aptly_ops import VERSION
from aptly_ops.aptly import (
    Client,
    DefaultSigningConfig,
    Package,
    PublishTarget,
    SigningConfig,
    Snapshot,
    UpdateResult,
)
from aptly_ops.exceptions import AptlyApiError, AptlyOpsError
from aptly_ops.util import timedelta_pretty, urljoin

log = logging.getLogger(__name__)


class ApiClient(Client):
    """Aptly client talking to 'aptly api serve'"""

    mirrors_url_path: ClassVar[str] = "api/mirrors"
    snapshots_url_path: ClassVar[str] = "api/snapshots"
    publish_url_path: ClassVar[str] = "api/publish"

    def __init__(
        self,
        url: str,
        signing_config: SigningConfig = DefaultSigningConfig,
        timeout: urllib3.Timeout = urllib3.Timeout(connect=15.0, read=None),
    ) -> None:
        self.base_headers = {"User-Agent": f"aptly-ops/{VERSION}"}
        self.http = urllib3.PoolManager(headers=self.base_headers, timeout=timeout)
        self.url = url
        self.signing_config = signing_config

    def _request(
        self,
        method: str,
        url: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]] = None,
        params: Dict[str, str] = None,
    ) -> Any:
        start = datetime.now()
        try:
            if params:
                log.debug("sending %s %s params: %s", method, url, params)
                resp = self.http.request_encode_url(method, url, fields=params)
            else:
                encoded_data = (
                    json.dumps(data).encode("utf-8") if data is not None else None
                )
                log.debug("sending %s %s data: %s", method, url, encoded_data)
                headers = dict(self.base_headers, **{"Content-Type": "application/json"})
                resp = self.http.request(method, url, body=encoded_data, headers=headers)
        except urllib3.exceptions.HTTPError as exc:
            raise AptlyOpsError(f"Failed to communicate with aptly API at {self.url}") from exc
        log.debug(
            "response on %s %s took %s returned %s: %s",
            method,
            url,
            timedelta_pretty(datetime.now() - start),
            resp.status,
            resp.data,
        )
        if resp.status < 200 or resp.status >= 300:
            raise AptlyApiError(resp.status, resp.data)
        if not resp.data:
            return None
        return json.loads(resp.data.decode("utf-8"))

    def mirror_list(self) -> List[str]:
        mirrors = self._request("GET", urljoin(self.url, self.mirrors_url_path))
        mirrors = cast(List[Dict[str, Any]], mirrors)
        return [mirror["Name"] for mirror in mirrors]

    def snapshot_list(self) -> List[Snapshot]:
        snap_list = self._request("GET", urljoin(self.url, self.snapshots_url_path))
        snap_list = cast(List[Dict[str, str]], snap_list)
        return [Snapshot.from_api_response(snap) for snap in snap_list]

    def _snapshot_keys(self, snap_name: str) -> List[str]:
        url = urljoin(self.url, self.snapshots_url_path, snap_name, "packages")
        return cast(List[str], self._request("GET", url) or [])

    def snapshot_packages(self, snap_name: str) -> List[str]:
        return [Package.from_key(key).dir_ref for key in self._snapshot_keys(snap_name)]

    def _mirror_keys(self, mirror_name: str) -> List[str]:
        url = urljoin(self.url, self.mirrors_url_path, mirror_name, "packages")
        return cast(List[str], self._request("GET", url) or [])

    def mirror_update(self, mirror_name: str) -> UpdateResult:
        """
        Update mirror. API does not report downloaded files,
        so package lists before and after the update are compared
        """
        before = set(self._mirror_keys(mirror_name))
        url = urljoin(self.url, self.mirrors_url_path, mirror_name)
        self._request("PUT", url, {})
        added = set(self._mirror_keys(mirror_name)) - before
        updated = sorted(Package.from_key(key).dir_ref for key in added)
        output = [f"Mirror {mirror_name} updated, {len(updated)} new package(s)"]
        output.extend(f"Added {ref}" for ref in updated)
        return UpdateResult(output=output, updated=updated)

    def snapshot_create_from_mirror(
        self, mirror_name: str, snapshot_name: str
    ) -> Snapshot:
        url = urljoin(self.url, self.mirrors_url_path, mirror_name, "snapshots")
        snapshot_data = self._request("POST", url, {"Name": snapshot_name})
        snapshot_data = cast(Dict[str, str], snapshot_data)
        return Snapshot.from_api_response(snapshot_data)

    def snapshot_merge(self, destination: str, sources: Sequence[str]) -> Snapshot:
        """
        Merge preserving all versions of packages, the same
        as 'aptly snapshot merge -no-remove'
        """
        keys = set()  # type: set
        for source in sources:
            keys.update(self._snapshot_keys(source))
        data = {
            "Name": destination,
            "PackageRefs": sorted(keys),
            "SourceSnapshots": list(sources),
            "Description": "Merged from sources: " + ", ".join(sources),
        }
        snapshot_data = self._request(
            "POST", urljoin(self.url, self.snapshots_url_path), data
        )
        snapshot_data = cast(Dict[str, str], snapshot_data)
        return Snapshot.from_api_response(snapshot_data)

    def publish_switch(self, target: PublishTarget, snapshot_name: str) -> None:
        body = {
            "Signing": self.signing_config.kwargs,
            "Snapshots": [
                {"Component": target.component or "main", "Name": snapshot_name}
            ],
        }  # type: Dict[str, Any]
        url = urljoin(
            self.url,
            self.publish_url_path,
            target.full_prefix_escaped,
            target.distribution,
        )
        self._request("PUT", url, body)

    def snapshot_delete(self, snap_name: str, force: bool = False) -> None:
        url = urljoin(self.url, self.snapshots_url_path, snap_name)
        params = {}  # type: Dict[str, str]
        if force:
            params["force"] = "1"
        self._request("DELETE", url, params=params)
