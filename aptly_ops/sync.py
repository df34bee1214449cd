"""
Mirror synchronization: update mirrors, snapshot and publish new packages,
rotate old snapshots and notify about all of it by mail.

Every repository goes through

    update -> [snapshot -> [merge] -> publish] -> prune

Snapshot, merge and publish happen only when the update downloaded new
packages. Failure to update, snapshot, merge or publish aborts the whole run
and alerts the admin. Failure to drop an old snapshot is reported and the
run goes on.
"""
import logging
from datetime import datetime
from typing import Callable, List, NamedTuple, NoReturn, Optional, Sequence, Tuple
from aptly_ops.aptly import Client
from aptly_ops.config import Config
from aptly_ops.exceptions import AptlyOpsError, SyncAborted
from aptly_ops.mail import Mailer, MailError
from aptly_ops.report import MAIL, MailBuffer, UpdatesLog
from aptly_ops.snapshots import PLAIN_TS_FORMAT, last_two, snapshot_name, snapshots_to_drop

log = logging.getLogger(__name__)

SUMMARY_SUBJECT = "Aptly Sync New package updates"
ERROR_SUBJECT = "Aptly Sync New package updates - ERROR"
CLEANUP_ERROR_SUBJECT = "Aptly Snapshot Cleanup - ERROR"

UPDATED = "updated"
NO_UPDATES = "no updates"
DRY_RUN = "dry-run"


class RepoResult(NamedTuple):
    """What happened to a repository during the run"""

    repository: str
    status: str
    published: Optional[str] = None
    dropped: Tuple[str, ...] = ()
    drop_failed: Tuple[str, ...] = ()


class Synchronizer:
    def __init__(
        self,
        aptly: Client,
        config: Config,
        mailer: Mailer,
        updates_log: Optional[UpdatesLog] = None,
        dry_run: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.aptly = aptly
        self.config = config
        self.mailer = mailer
        self.updates_log = updates_log
        self.dry_run = dry_run
        self.clock = clock
        self.started = clock()

    @property
    def stamp(self) -> str:
        return self.started.strftime(PLAIN_TS_FORMAT)

    def alert(self, subject: str, what: str, output: str = "") -> None:
        """Send error notification to admin right away"""
        body = f"{self.stamp} - Error! {what}\n{output}"
        try:
            self.mailer.send(self.config.admin, subject, body)
        except MailError as exc:
            log.error("Failed to alert admin: %s: %s", exc, exc.__cause__ or "")

    def abort(self, what: str, exc: AptlyOpsError, repository: str = None) -> NoReturn:
        """Report fatal error and stop the run"""
        output = getattr(exc, "output", "") or str(exc)
        log.error("%s: %s", what, exc)
        log.debug("Printing traceback for error above", exc_info=True)
        self.alert(ERROR_SUBJECT, what, output)
        if repository and output:
            self.record_updates(repository, output.splitlines())
        raise SyncAborted(what) from exc

    def record_updates(self, repository: str, lines: Sequence[str]) -> None:
        if not self.updates_log:
            return
        try:
            self.updates_log.append(repository, lines)
        except OSError as exc:
            log.error(
                "Failed to write %s: %s", self.updates_log.path(repository), exc, extra=MAIL
            )

    def _snapshot_names(self) -> List[str]:
        return [snap.name for snap in self.aptly.snapshot_list()]

    def repositories(self, requested: Optional[Sequence[str]] = None) -> List[str]:
        """Return requested repositories or every mirror known to aptly"""
        if requested:
            return list(requested)
        try:
            mirrors = self.aptly.mirror_list()
        except AptlyOpsError as exc:
            self.abort("Could not get list of mirrors from aptly!", exc)
        log.info(
            "No list of mirrors provided. Got list of mirrors from aptly instead: %s",
            " ".join(mirrors),
        )
        return mirrors

    def merge(self, repository: str, snapshot: str) -> str:
        """
        Merge two latest snapshots of repository.
        Returns name of snapshot to publish
        """
        try:
            sources = last_two(repository, self._snapshot_names())
        except AptlyOpsError as exc:
            self.abort(f"Failed to list snapshots to merge for {repository}", exc, repository)
        if not sources:
            log.warning(
                "Could not find two snapshots to merge for %s. Skipping merge.",
                repository,
                extra=MAIL,
            )
            return snapshot
        merged = snapshot_name(repository, self.clock(), merged=True)
        log.info("Merging snapshots: %s", " ".join(sources), extra=MAIL)
        try:
            self.aptly.snapshot_merge(merged, sources)
        except AptlyOpsError as exc:
            self.abort(
                f"Aptly failed to merge snapshots: {' '.join(sources)}", exc, repository
            )
        return merged

    def publish_updates(self, repository: str, updated: Sequence[str]) -> str:
        """Snapshot the mirror, merge if configured, and publish. Returns published snapshot"""
        snapshot = snapshot_name(repository, self.started)
        self.record_updates(repository, updated)
        log.info(
            "Updated packages for repository: %s\n\n%s\n",
            repository,
            "\n".join(updated),
            extra=MAIL,
        )

        log.info("Created snapshot %s", snapshot, extra=MAIL)
        try:
            self.aptly.snapshot_create_from_mirror(repository, snapshot)
        except AptlyOpsError as exc:
            self.abort(
                f"Aptly snapshot {snapshot} failed for repository {repository}",
                exc,
                repository,
            )

        if repository in self.config.merge:
            snapshot = self.merge(repository, snapshot)

        target = self.config.publish_target(repository)
        log.info("Serving snapshot %s", snapshot, extra=MAIL)
        try:
            self.aptly.publish_switch(target, snapshot)
        except AptlyOpsError as exc:
            self.abort(
                f"Aptly snapshot publishing failed: {snapshot} to {target}. "
                "Snapshot name has to be <repository name>-<timestamp>",
                exc,
                repository,
            )
        return snapshot

    def prune(self, repository: str) -> Tuple[List[str], List[str]]:
        """
        Drop snapshots of repository that are older than last
        config.snapshot_keep ones. Returns dropped and failed to drop snapshots
        """
        dropped = []  # type: List[str]
        failed = []  # type: List[str]
        try:
            names = self._snapshot_names()
        except AptlyOpsError as exc:
            log.error("Failed to list snapshots of %s: %s", repository, exc, extra=MAIL)
            self.alert(
                CLEANUP_ERROR_SUBJECT,
                f"Failed to list snapshots of {repository}",
                getattr(exc, "output", "") or str(exc),
            )
            return dropped, failed

        for name in snapshots_to_drop(repository, names, self.config.snapshot_keep):
            if self.dry_run:
                log.info("[DRY-RUN] Would delete snapshot %s", name, extra=MAIL)
                continue
            log.info("Deleting old snapshot %s", name, extra=MAIL)
            try:
                self.aptly.snapshot_delete(name, force=True)
                dropped.append(name)
            except AptlyOpsError as exc:
                self.alert(
                    CLEANUP_ERROR_SUBJECT,
                    f"Failed to delete snapshot {name}",
                    getattr(exc, "output", "") or str(exc),
                )
                log.error("Failed to delete snapshot %s", name, extra=MAIL)
                failed.append(name)
        return dropped, failed

    def sync_repo(self, repository: str) -> RepoResult:
        if self.dry_run:
            log.info("[DRY-RUN] Would update mirror %s", repository, extra=MAIL)
            log.info(
                "[DRY-RUN] No real update performed for %s, skipping snapshot creation.",
                repository,
            )
            self.prune(repository)
            return RepoResult(repository, DRY_RUN)

        try:
            result = self.aptly.mirror_update(repository)
        except AptlyOpsError as exc:
            self.abort(f"Aptly mirror failed for {repository}", exc, repository)
        for line in result.output:
            log.info("%s", line)

        published = None
        if result.updated:
            status = UPDATED
            published = self.publish_updates(repository, result.updated)
        else:
            status = NO_UPDATES
            log.info("Repository `%s` no new packages or updates found.", repository)

        dropped, failed = self.prune(repository)
        return RepoResult(repository, status, published, tuple(dropped), tuple(failed))

    def notify(self, body: str) -> None:
        if not body or not self.config.mail_recipients:
            return
        try:
            self.mailer.send(self.config.mail_recipients, SUMMARY_SUBJECT, body)
        except MailError as exc:
            log.error("Failed to send summary: %s: %s", exc, exc.__cause__ or "")

    def run(self, requested: Optional[Sequence[str]] = None) -> List[RepoResult]:
        """
        Sync requested repositories, or all mirrors, one by one and mail
        the summary. Raises SyncAborted on fatal errors
        """
        mail_buffer = MailBuffer()
        app_logger = logging.getLogger(__package__)
        app_logger.addHandler(mail_buffer)
        # records must reach the mail buffer whatever logging was configured
        level = app_logger.level
        if app_logger.getEffectiveLevel() > logging.INFO:
            app_logger.setLevel(logging.INFO)
        try:
            if not self.config.mail_recipients:
                log.warning(
                    "No mail recipients set. Nobody will be notified about new updates."
                )
            if not self.config.admin:
                log.warning("No admin address set. Nobody will be notified about errors.")
            results = [self.sync_repo(repo) for repo in self.repositories(requested)]
        finally:
            app_logger.removeHandler(mail_buffer)
            app_logger.setLevel(level)
        self.notify(mail_buffer.body)
        return results
