"""Tests for the mailkeep command line."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mailkeep.cli import cli
from mailkeep.storage.database import Database
from mailkeep.storage.emails import EmailStore
from mailkeep.storage.ingestion_log import IngestionLedger
from mailkeep.storage.mailbox_config import MailboxConfigStore
from mailkeep.storage.models import NewEmail, RunStatus

CLI_PASSPHRASE = "cli-passphrase"


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "mailkeep.db"


@pytest.fixture()
def invoke(runner: CliRunner, tmp_path: Path, db_path: Path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"database_path": str(db_path)}), encoding="utf-8")

    def _invoke(*args: str, **kwargs):
        return runner.invoke(
            cli,
            ["--config", str(config_path), *args],
            env={"MAILKEEP_PASSPHRASE": CLI_PASSPHRASE},
            **kwargs,
        )

    return _invoke


def add_work_mailbox(invoke, *extra: str):
    return invoke(
        "mailbox",
        "add",
        "work",
        "--host",
        "127.0.0.1",
        "--port",
        "1",
        "--username",
        "me@example.com",
        "--password",
        "secret",
        "--no-tls",
        *extra,
    )


def test_mailbox_add_and_list(invoke, db_path):
    result = add_work_mailbox(invoke)
    assert result.exit_code == 0, result.output
    assert "Saved mailbox" in result.output

    listed = invoke("mailbox", "list")
    assert listed.exit_code == 0, listed.output
    assert "work" in listed.output

    db = Database(db_path)
    try:
        config = MailboxConfigStore(db).get_by_name("work")
        assert config.use_tls is False
        assert config.password_encrypted != b"secret"
        assert config.decrypt_password(CLI_PASSPHRASE) == "secret"
    finally:
        db.close()


def test_mailbox_add_prompts_for_password(invoke, db_path):
    result = invoke(
        "mailbox", "add", "home", "--host", "imap.example.com", "-u", "me", input="hunter2\n"
    )
    assert result.exit_code == 0, result.output

    db = Database(db_path)
    try:
        config = MailboxConfigStore(db).get_by_name("home")
        assert config.mail_port == 993
        assert config.decrypt_password(CLI_PASSPHRASE) == "hunter2"
    finally:
        db.close()


def test_mailbox_list_empty(invoke):
    result = invoke("mailbox", "list")
    assert result.exit_code == 0
    assert "No mailboxes configured" in result.output


def test_mailbox_activate_and_remove(invoke, db_path):
    add_work_mailbox(invoke)

    assert invoke("mailbox", "activate", "1").exit_code == 0
    assert invoke("mailbox", "remove", "1", "--yes").exit_code == 0

    missing = invoke("mailbox", "remove", "1", "--yes")
    assert missing.exit_code == 1

    db = Database(db_path)
    try:
        assert MailboxConfigStore(db).get_all() == []
    finally:
        db.close()


def test_sync_without_mailboxes(invoke):
    result = invoke("sync")
    assert result.exit_code == 0, result.output
    assert "No mailboxes configured" in result.output


def test_sync_failure_is_recorded(invoke, db_path):
    add_work_mailbox(invoke)

    result = invoke("sync")

    assert result.exit_code == 1
    assert "failed" in result.output

    db = Database(db_path)
    try:
        runs = IngestionLedger(db).list_runs()
        assert len(runs) == 1
        assert runs[0].status is RunStatus.FAILED
        assert runs[0].error_message
    finally:
        db.close()

    listed = invoke("runs", "--limit", "5")
    assert listed.exit_code == 0
    assert "failed" in listed.output


def test_runs_empty(invoke):
    result = invoke("runs")
    assert result.exit_code == 0
    assert "No ingestion runs recorded" in result.output


def test_emails_lists_stored_messages(invoke, db_path):
    assert invoke("emails").exit_code == 0
    add_work_mailbox(invoke)

    db = Database(db_path)
    try:
        EmailStore(db).insert(
            NewEmail(
                mailbox_config_id=1,
                uid=1,
                subject="Hello",
                from_address="a@example.com",
                date_sent=datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc),
                date_received=datetime(2024, 1, 2, 10, 5, tzinfo=timezone.utc),
            )
        )
    finally:
        db.close()

    result = invoke("emails", "--mailbox", "1")
    assert result.exit_code == 0, result.output
    assert "Hello" in result.output
    assert "2024-01-02" in result.output


def test_invalid_settings_file(runner, tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text("{not json", encoding="utf-8")

    result = runner.invoke(cli, ["--config", str(config_path), "runs"])

    assert result.exit_code == 1
