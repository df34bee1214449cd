"""Delivery of notification emails"""
import logging
import shlex
import smtplib
import subprocess
from email.message import EmailMessage
from typing import Sequence
from aptly_ops.config import MailConfig
from aptly_ops.exceptions import AptlyOpsError

log = logging.getLogger(__name__)


class MailError(AptlyOpsError):
    """Notification could not be delivered"""


class Mailer:
    """
    Sends plain text messages either through SMTP server or by piping
    body to mailx compatible command (mailx -s <subject> [-r <from>] <rcpt>...)
    """

    def __init__(self, config: MailConfig, sender: str = "") -> None:
        self.config = config
        self.sender = sender

    def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        if not recipients:
            log.debug("No recipients for '%s', not sending", subject)
            return
        log.debug("Sending '%s' to %s", subject, ", ".join(recipients))
        if self.config.transport == "command":
            self._send_command(recipients, subject, body)
        else:
            self._send_smtp(recipients, subject, body)

    def _send_command(self, recipients: Sequence[str], subject: str, body: str) -> None:
        cmd = shlex.split(self.config.command) + ["-s", subject]
        if self.sender:
            cmd.extend(["-r", self.sender])
        cmd.extend(recipients)
        try:
            proc = subprocess.run(
                cmd,
                input=body,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
            )
        except OSError as exc:
            raise MailError(f"Failed to run '{cmd[0]}'") from exc
        if proc.returncode != 0:
            raise MailError(
                f"'{cmd[0]}' exited with code {proc.returncode}: {proc.stdout.strip()}"
            )

    def _send_smtp(self, recipients: Sequence[str], subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        if self.sender:
            msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port) as server:
                server.send_message(msg)
        except (OSError, smtplib.SMTPException) as exc:
            raise MailError(
                f"Failed to send mail via {self.config.smtp_host}:{self.config.smtp_port}"
            ) from exc
