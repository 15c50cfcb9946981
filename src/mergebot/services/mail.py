"""HTML summary mail sent at the end of a merge run."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formatdate
from pathlib import Path
from string import Template

from mergebot.core.errors import ExternalServiceFailure, InvalidInput
from mergebot.core.log import logger
from mergebot.core.models import MergeOutcome, MergeStatus, ResolvedMergeSource


def render_summary(
    outcome: MergeOutcome,
    source: ResolvedMergeSource,
    destination: str,
    archive: Path | None,
    templates: dict[str, str],
) -> str:
    """Render the summary body from the configured HTML fragments.

    Fragments are string.Template text; $source, $revision and
    $destination are available everywhere, $state and $path in row.
    """
    values = {
        "source": source.branch,
        "revision": source.external_revision,
        "destination": destination,
    }

    def fragment(name: str, **extra) -> str:
        return Template(templates.get(name, "")).safe_substitute(values, **extra)

    parts = [fragment("head"), "<body>"]
    if outcome.status is MergeStatus.CONFLICTING:
        parts.append(fragment("conflicting"))
        parts.append("<table>")
        parts.extend(
            fragment("row", state=state.value, path=path)
            for path, state in outcome.conflicts.items()
        )
        parts.append("</table>")
    else:
        parts.append(fragment("success"))
    if archive is not None and Path(archive).exists():
        parts.append(fragment("attachment"))
    parts.append(fragment("signature"))
    parts.append("</body>")
    return "".join(parts)


def resolve_recipients(names: list[str], domain: str | None = None) -> list[str]:
    """Full addresses for a recipient list.

    Blank entries are dropped; names without "@" get the default
    domain appended.

    Raises:
        InvalidInput: If a bare name is given and no domain is set
    """
    addresses = []
    for name in names:
        name = name.strip()
        if not name:
            continue
        if "@" not in name:
            if not domain:
                raise InvalidInput(
                    f"Recipient {name!r} has no domain and no default "
                    f"mail domain is configured"
                )
            name = f"{name}@{domain}"
        addresses.append(name)
    return addresses


class Mailer:
    """Send summary mails over SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 25,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        starttls: bool = False,
        default_domain: str | None = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.starttls = starttls
        self.default_domain = default_domain
        if sender is None and username and default_domain:
            sender = f"{username}@{default_domain}"
        self.sender = sender

    @classmethod
    def from_config(cls, mail_config) -> Mailer:
        if not mail_config.smtp_host:
            raise InvalidInput("mail.smtp_host is required to send mail")
        return cls(
            smtp_host=mail_config.smtp_host,
            smtp_port=mail_config.smtp_port,
            username=mail_config.username,
            password=mail_config.password,
            sender=mail_config.sender,
            starttls=mail_config.starttls,
            default_domain=mail_config.default_domain,
        )

    def compose(
        self,
        recipients: list[str],
        subject: str,
        html: str,
        attachment: Path | None = None,
    ) -> EmailMessage:
        if self.sender is None:
            raise InvalidInput(
                "mail.sender (or mail.username with mail.default_domain) "
                "is required to send mail"
            )
        addresses = resolve_recipients(recipients, self.default_domain)
        if not addresses:
            raise InvalidInput("No mail recipients given")
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(addresses)
        message["Subject"] = subject
        message["Date"] = formatdate(localtime=True)
        message.set_content(html, subtype="html", charset="utf-8")
        if attachment is not None and Path(attachment).exists():
            attachment = Path(attachment)
            message.add_attachment(
                attachment.read_bytes(),
                maintype="application",
                subtype="zip",
                filename=attachment.name,
            )
        return message

    def send(
        self,
        recipients: list[str],
        subject: str,
        html: str,
        attachment: Path | None = None,
    ) -> None:
        """Compose and deliver one mail.

        Raises:
            InvalidInput: If no sender or recipient can be determined
            ExternalServiceFailure: If SMTP delivery fails
        """
        message = self.compose(recipients, subject, html, attachment)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceFailure(f"Failed to send mail: {exc}") from exc

        logger.info(
            "Summary mail sent",
            to=message["To"],
            attachment=str(attachment) if attachment else None,
        )
