"""This module contains aptly client interface, its command line implementation and all associated data types"""
import abc
import json
import logging
import re
import subprocess
from datetime import datetime
from typing import (
    Dict,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Union,
)
import dateutil.parser
from aptly_ops.exceptions import AptlyCommandError, AptlyOpsError
from aptly_ops.util import timedelta_pretty

log = logging.getLogger(__name__)

KEY_REGEXP = re.compile(r"(\w*?)P(\w+) (\S+) (\S+) (\w+)$")


class SigningConfig(NamedTuple):
    """
    Holds configuration for publish signing
    """

    skip: bool = False
    batch: bool = True
    gpgkey: Optional[str] = None
    keyring: Optional[str] = None
    secret_keyring: Optional[str] = None
    passphrase: Optional[str] = None
    passphrase_file: Optional[str] = None

    @property
    def kwargs(self) -> Dict[str, Union[str, bool]]:
        """
        Returns dictionary suitable for api request
        """
        if self.skip:
            return {"Skip": True}
        kwargs = {"Batch": self.batch}  # type: Dict[str, Union[str, bool]]
        if self.gpgkey:
            kwargs["GpgKey"] = self.gpgkey
        if self.keyring:
            kwargs["Keyring"] = self.keyring
        if self.secret_keyring:
            kwargs["SecretKeyring"] = self.secret_keyring
        if self.passphrase:
            kwargs["Passphrase"] = self.passphrase
        if self.passphrase_file:
            kwargs["PassphraseFile"] = self.passphrase_file
        return kwargs

    @property
    def flags(self) -> List[str]:
        """
        Returns list of flags for aptly command line
        """
        if self.skip:
            return ["-skip-signing"]
        flags = []
        if self.batch:
            flags.append("-batch")
        if self.gpgkey:
            flags.append(f"-gpg-key={self.gpgkey}")
        if self.keyring:
            flags.append(f"-keyring={self.keyring}")
        if self.secret_keyring:
            flags.append(f"-secret-keyring={self.secret_keyring}")
        if self.passphrase:
            flags.append(f"-passphrase={self.passphrase}")
        if self.passphrase_file:
            flags.append(f"-passphrase-file={self.passphrase_file}")
        return flags


DefaultSigningConfig = SigningConfig()


class InvalidPackageKey(Exception):
    """
    Exception that indicates invalid package key
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Invalid package key '{key}'")


class Package(NamedTuple):
    """Represents package in aptly"""

    name: str
    version: str
    arch: str
    prefix: str
    files_hash: str

    @property
    def key(self) -> str:
        """Returns aptly key"""
        return f"{self.prefix}P{self.arch} {self.name} {self.version} {self.files_hash}"

    @property
    def dir_ref(self) -> str:
        """Returns aptly dir ref, the form packages are listed in by 'aptly snapshot show'"""
        return f"{self.name}_{self.version}_{self.arch}"

    @classmethod
    def from_key(cls, key: str) -> "Package":
        """Create from instance of aptly key"""
        match = KEY_REGEXP.match(key)
        if not match:
            raise InvalidPackageKey(key)
        prefix, arch, name, version, files_hash = match.groups()
        return cls(
            name=name, version=version, arch=arch, prefix=prefix, files_hash=files_hash
        )


class Snapshot(NamedTuple):
    """Represents snapshot in aptly"""

    name: str
    description: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_api_response(cls, resp: Dict[str, str]) -> "Snapshot":
        """Create snapshot instance from API json response"""
        created_at = None
        if resp.get("CreatedAt"):
            created_at = dateutil.parser.isoparse(resp["CreatedAt"])
        return cls(
            name=resp["Name"],
            description=resp.get("Description", ""),
            created_at=created_at,
        )


class PublishTarget(NamedTuple):
    """
    Publish a repository is served from.
    prefix may carry the endpoint as in "s3:bucket:prefix"
    """

    distribution: str
    prefix: str = ""
    component: str = ""

    @property
    def full_prefix(self) -> str:
        """
        Return complete prefix (url path part) for publish
        """
        storage, _, prefix = self.prefix.rpartition(":")
        prefix = prefix if prefix else "."
        if not storage:
            return prefix
        return storage + ":" + prefix

    @property
    def full_prefix_escaped(self) -> str:
        """
        Return complete prefix (url path part) for publish escaped according to aptly rules
        """
        prefix = self.full_prefix
        if prefix == ".":
            return ":."
        prefix = prefix.replace("_", "__")
        prefix = prefix.replace("/", "_")
        return prefix

    def __str__(self) -> str:
        return f"{self.full_prefix}/{self.distribution}"


class UpdateResult(NamedTuple):
    """
    Outcome of a mirror update: lines to log and
    identifiers of package files that were downloaded
    """

    output: Sequence[str] = ()
    updated: Sequence[str] = ()


class Client(abc.ABC):
    """Operations on aptly needed to search and rotate mirror snapshots"""

    @abc.abstractmethod
    def mirror_list(self) -> List[str]:
        """Return names of all mirrors"""

    @abc.abstractmethod
    def snapshot_list(self) -> List[Snapshot]:
        """Return a list of all snapshots"""

    @abc.abstractmethod
    def snapshot_packages(self, snap_name: str) -> List[str]:
        """Return packages of a snapshot as dir refs (name_version_arch)"""

    @abc.abstractmethod
    def mirror_update(self, mirror_name: str) -> UpdateResult:
        """Download new packages into the mirror"""

    @abc.abstractmethod
    def snapshot_create_from_mirror(
        self, mirror_name: str, snapshot_name: str
    ) -> Snapshot:
        """Create snapshot of the current mirror state"""

    @abc.abstractmethod
    def snapshot_merge(self, destination: str, sources: Sequence[str]) -> Snapshot:
        """Merge sources into new snapshot destination keeping all package versions"""

    @abc.abstractmethod
    def publish_switch(self, target: PublishTarget, snapshot_name: str) -> None:
        """Switch published repository to the snapshot"""

    @abc.abstractmethod
    def snapshot_delete(self, snap_name: str, force: bool = False) -> None:
        """Delete snapshot"""

    def root_dir(self) -> Optional[str]:
        """Return aptly root directory if it is known to the client"""
        return None


class CliClient(Client):
    """Aptly client that runs aptly command line tool"""

    def __init__(
        self,
        aptly_cmd: str = "aptly",
        config_file: Optional[str] = None,
        signing_config: SigningConfig = DefaultSigningConfig,
    ) -> None:
        self.aptly_cmd = aptly_cmd
        self.config_file = config_file
        self.signing_config = signing_config

    def _run(self, *args: str) -> str:
        cmd = [self.aptly_cmd]
        if self.config_file:
            cmd.append("-config=" + self.config_file)
        cmd.extend(args)
        start = datetime.now()
        log.debug("running %s", cmd)
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
            )
        except OSError as exc:
            raise AptlyOpsError(f"Failed to run '{self.aptly_cmd}'") from exc
        log.debug(
            "%s took %s returned %s",
            cmd,
            timedelta_pretty(datetime.now() - start),
            proc.returncode,
        )
        if proc.returncode != 0:
            raise AptlyCommandError(cmd, proc.returncode, proc.stdout)
        return proc.stdout

    def mirror_list(self) -> List[str]:
        out = self._run("mirror", "list", "-raw")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def snapshot_list(self) -> List[Snapshot]:
        out = self._run("snapshot", "list", "-raw")
        return [Snapshot(line.strip()) for line in out.splitlines() if line.strip()]

    def snapshot_packages(self, snap_name: str) -> List[str]:
        out = self._run("snapshot", "show", "-with-packages", snap_name)
        lines = out.splitlines()
        for index, line in enumerate(lines):
            if line.strip() == "Packages:":
                return [pkg.strip() for pkg in lines[index + 1 :] if pkg.strip()]
        return []

    def mirror_update(self, mirror_name: str) -> UpdateResult:
        out = self._run("mirror", "update", mirror_name)
        lines = out.splitlines()
        # e.g. "Success downloading http://deb.example.com/pool/main/n/nginx/nginx_1.2_amd64.deb"
        updated = [
            line.strip().rpartition("/")[2]
            for line in lines
            if "Success" in line and "/pool/" in line
        ]
        return UpdateResult(output=lines, updated=updated)

    def snapshot_create_from_mirror(
        self, mirror_name: str, snapshot_name: str
    ) -> Snapshot:
        self._run("snapshot", "create", snapshot_name, "from", "mirror", mirror_name)
        return Snapshot(snapshot_name, f"Snapshot from mirror [{mirror_name}]")

    def snapshot_merge(self, destination: str, sources: Sequence[str]) -> Snapshot:
        self._run(
            "snapshot", "merge", "-latest=false", "-no-remove", destination, *sources
        )
        return Snapshot(destination, "Merged from sources: " + ", ".join(sources))

    def publish_switch(self, target: PublishTarget, snapshot_name: str) -> None:
        args = ["publish", "switch"] + self.signing_config.flags
        if target.component:
            args.append("-component=" + target.component)
        args.append(target.distribution)
        if target.prefix:
            args.append(target.prefix)
        args.append(snapshot_name)
        self._run(*args)

    def snapshot_delete(self, snap_name: str, force: bool = False) -> None:
        args = ["snapshot", "drop"]
        if force:
            args.append("-force")
        args.append(snap_name)
        self._run(*args)

    def root_dir(self) -> Optional[str]:
        out = self._run("config", "show")
        try:
            config = json.loads(out)
        except json.JSONDecodeError as exc:
            raise AptlyOpsError("Can't parse output of 'aptly config show'") from exc
        return config.get("rootDir") or None
