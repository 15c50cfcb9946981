"""Tests for the summary mail."""

import smtplib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from mergebot.core.errors import ExternalServiceFailure, InvalidInput
from mergebot.core.models import (
    ConflictRecord,
    MergeOutcome,
    ResolvedMergeSource,
    StageState,
)
from mergebot.services.mail import Mailer, render_summary, resolve_recipients

TEMPLATES = {
    "head": "<head/>",
    "conflicting": "<p>$source ($revision) conflicts in $destination</p>",
    "row": "<tr><td>$state</td><td>$path</td></tr>",
    "success": "<p>$source merged into $destination</p>",
    "attachment": "<p>see attachment</p>",
    "signature": "<p>robot</p>",
}

SOURCE = ResolvedMergeSource(branch="release", external_revision="r100")


def test_resolve_recipients():
    assert resolve_recipients(
        ["alice", " bob@other.org ", ""], "example.com"
    ) == ["alice@example.com", "bob@other.org"]


def test_resolve_bare_name_without_domain():
    with pytest.raises(InvalidInput, match="alice"):
        resolve_recipients(["alice"])


def test_render_success_summary():
    outcome = MergeOutcome.success("abc")

    html = render_summary(outcome, SOURCE, "main", None, TEMPLATES)

    assert html == (
        "<head/><body><p>release merged into main</p>"
        "<p>robot</p></body>"
    )


def test_render_conflicting_summary_with_attachment(tmp_path):
    archive = tmp_path / "blame.zip"
    archive.write_bytes(b"zip")
    outcome = MergeOutcome.conflicting(
        ConflictRecord({
            "b.c": StageState.BOTH_ADDED,
            "a.txt": StageState.BOTH_MODIFIED,
        }),
        "abc",
    )

    html = render_summary(outcome, SOURCE, "main", archive, TEMPLATES)

    assert html == (
        "<head/><body>"
        "<p>release (r100) conflicts in main</p>"
        "<table>"
        "<tr><td>BOTH_MODIFIED</td><td>a.txt</td></tr>"
        "<tr><td>BOTH_ADDED</td><td>b.c</td></tr>"
        "</table>"
        "<p>see attachment</p>"
        "<p>robot</p></body>"
    )


def test_render_skips_missing_attachment(tmp_path):
    outcome = MergeOutcome.conflicting(
        ConflictRecord({"a.txt": StageState.DELETED_BY_US}), "abc"
    )

    html = render_summary(
        outcome, SOURCE, "main", tmp_path / "missing.zip", TEMPLATES
    )

    assert "see attachment" not in html


def test_sender_defaults_to_username_at_domain():
    mailer = Mailer("smtp.example.com", username="robot", default_domain="example.com")

    assert mailer.sender == "robot@example.com"


def test_compose_with_attachment(tmp_path):
    archive = tmp_path / "blame.zip"
    archive.write_bytes(b"PK\x05\x06")
    mailer = Mailer("smtp.example.com", sender="robot@example.com",
                    default_domain="example.com")

    message = mailer.compose(["alice"], "Summary", "<p>hi</p>", archive)

    assert message["To"] == "alice@example.com"
    assert message["Subject"] == "Summary"
    (attachment,) = message.iter_attachments()
    assert attachment.get_content_type() == "application/zip"
    assert attachment.get_filename() == "blame.zip"
    assert attachment.get_content() == b"PK\x05\x06"


def test_compose_without_sender():
    with pytest.raises(InvalidInput, match="sender"):
        Mailer("smtp.example.com").compose(["a@b.c"], "s", "<p/>")


def test_send_delivers_over_smtp():
    mailer = Mailer(
        "smtp.example.com",
        smtp_port=587,
        username="robot",
        password="secret",
        starttls=True,
        default_domain="example.com",
    )

    with patch("mergebot.services.mail.smtplib.SMTP") as smtp_class:
        smtp = smtp_class.return_value.__enter__.return_value
        mailer.send(["alice"], "Summary", "<p>hi</p>")

    smtp_class.assert_called_once_with("smtp.example.com", 587)
    smtp.starttls.assert_called_once_with()
    smtp.login.assert_called_once_with("robot", "secret")
    (message,), _ = smtp.send_message.call_args
    assert message["From"] == "robot@example.com"
    assert message["To"] == "alice@example.com"


def test_send_without_recipients():
    mailer = Mailer("smtp.example.com", sender="robot@example.com")

    with pytest.raises(InvalidInput, match="recipients"):
        mailer.send([" "], "Summary", "<p/>")


def test_send_failure_is_external():
    mailer = Mailer("smtp.example.com", sender="robot@example.com")
    smtp_class = MagicMock(side_effect=smtplib.SMTPConnectError(421, "busy"))

    with patch("mergebot.services.mail.smtplib.SMTP", smtp_class):
        with pytest.raises(ExternalServiceFailure, match="Failed to send mail"):
            mailer.send(["a@b.c"], "Summary", "<p/>")


def test_from_config_requires_host():
    config = SimpleNamespace(smtp_host=None)

    with pytest.raises(InvalidInput, match="smtp_host"):
        Mailer.from_config(config)
