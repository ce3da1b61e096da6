"""Ingestion ledger: one row per sync run.

A run is created when a mailbox pass starts and completed exactly once when
it ends, successfully or not.
"""

from __future__ import annotations

from typing import List, Optional, Union

from ..errors import LedgerError
from .database import Database, to_db_time, utcnow
from .models import IngestionRun, RunStatus


class IngestionLedger:
    """Records the lifecycle of ingestion runs."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_run(self, folder: str, mailbox_config_id: Optional[int] = None) -> int:
        """Insert a started run and return its id."""
        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO ingestion_log(mailbox_config_id, started_at, status, folder_name)
                VALUES (?, ?, ?, ?)
                """,
                (mailbox_config_id, to_db_time(utcnow()), RunStatus.RUNNING.value, folder),
            )
            return int(cur.lastrowid)

    def complete_run(
        self,
        run_id: int,
        processed: int,
        new: int,
        updated: int,
        status: Union[RunStatus, str],
        error_message: Optional[str] = None,
    ) -> IngestionRun:
        """Set the terminal fields of a run.

        Raises:
            LedgerError: If the run does not exist, is already complete, or
                ``status`` is not terminal
        """
        status = RunStatus(status)
        if status is RunStatus.RUNNING:
            raise LedgerError(f"Run {run_id} cannot be completed with status 'running'")

        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE ingestion_log SET
                    completed_at = ?,
                    emails_processed = ?,
                    emails_new = ?,
                    emails_updated = ?,
                    status = ?,
                    error_message = ?
                WHERE id = ? AND completed_at IS NULL
                """,
                (
                    to_db_time(utcnow()),
                    processed,
                    new,
                    updated,
                    status.value,
                    error_message,
                    run_id,
                ),
            )
            if cur.rowcount == 0:
                raise LedgerError(
                    f"Run {run_id} is unknown or already completed",
                    details={"run_id": run_id},
                )

        run = self.get_run(run_id)
        if run is None:
            raise LedgerError(
                f"Run {run_id} vanished after completion", details={"run_id": run_id}
            )
        return run

    def get_run(self, run_id: int) -> Optional[IngestionRun]:
        row = self._db.query_one("SELECT * FROM ingestion_log WHERE id = ?", (run_id,))
        return self._to_run(row) if row else None

    def list_runs(
        self, limit: int = 20, mailbox_config_id: Optional[int] = None
    ) -> List[IngestionRun]:
        """Newest runs first."""
        if mailbox_config_id is None:
            rows = self._db.query_all(
                "SELECT * FROM ingestion_log ORDER BY id DESC LIMIT ?", (limit,)
            )
        else:
            rows = self._db.query_all(
                "SELECT * FROM ingestion_log WHERE mailbox_config_id = ? "
                "ORDER BY id DESC LIMIT ?",
                (mailbox_config_id, limit),
            )
        return [self._to_run(row) for row in rows]

    @staticmethod
    def _to_run(row) -> IngestionRun:
        return IngestionRun(
            id=row["id"],
            mailbox_config_id=row["mailbox_config_id"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            emails_processed=row["emails_processed"],
            emails_new=row["emails_new"],
            emails_updated=row["emails_updated"],
            status=row["status"],
            error_message=row["error_message"],
            folder_name=row["folder_name"],
        )


__all__ = ["IngestionLedger"]
