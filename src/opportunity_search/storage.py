from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import AbstractContextManager
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from opportunity_search.models import Opportunity, OpportunityType

DEFAULT_SOURCE = "tinyfish"

_METADATA_LIST_FIELDS = ("responsibilities", "benefits", "application_steps", "faq")
_COLUMN_FIELDS = (
    "type",
    "title",
    "organization",
    "location",
    "description",
    "link",
    "deadline",
    "match_score",
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class OpportunityStore(AbstractContextManager["OpportunityStore"]):
    """SQLite persistence for imported opportunities.

    Imports are append-only: the store does not dedupe against rows saved by
    earlier searches.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS opportunities (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    organization TEXT,
                    location TEXT,
                    description TEXT,
                    requirements TEXT NOT NULL,
                    link TEXT,
                    deadline TEXT,
                    match_score REAL,
                    metadata TEXT NOT NULL,
                    source TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_opportunities_user
                ON opportunities (user_id, created_at)
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS search_logs (
                    run_at TEXT NOT NULL,
                    query TEXT NOT NULL,
                    result_count INTEGER NOT NULL,
                    error_count INTEGER NOT NULL
                )
                """
            )

    def import_opportunities(
        self,
        user_id: str,
        items: list[Opportunity],
        *,
        source: str = DEFAULT_SOURCE,
        created_at_utc: str | None = None,
    ) -> int:
        if not user_id:
            raise ValueError("user_id is required")
        created_at = created_at_utc or _utc_now_iso()
        rows = []
        for item in items:
            if not item.title:
                raise ValueError("opportunity title is required")
            data = asdict(item)
            metadata = {
                key: value
                for key, value in data.items()
                if key not in _COLUMN_FIELDS and key not in ("id", "requirements")
            }
            rows.append(
                (
                    uuid.uuid4().hex,
                    user_id,
                    item.type,
                    item.title,
                    item.organization or None,
                    item.location or None,
                    item.description or None,
                    json.dumps(item.requirements, ensure_ascii=False),
                    item.link or None,
                    item.deadline,
                    item.match_score,
                    json.dumps(metadata, ensure_ascii=False),
                    source,
                    created_at,
                )
            )
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO opportunities (
                    id, user_id, type, title, organization, location, description,
                    requirements, link, deadline, match_score, metadata, source, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def list_opportunities(
        self, user_id: str, opportunity_type: OpportunityType | None = None
    ) -> list[Opportunity]:
        query = "SELECT * FROM opportunities WHERE user_id = ?"
        params: list[str] = [user_id]
        if opportunity_type:
            query += " AND type = ?"
            params.append(opportunity_type)
        query += " ORDER BY created_at DESC, rowid DESC"
        return [self._row_to_opportunity(row) for row in self.conn.execute(query, params)]

    @staticmethod
    def _row_to_opportunity(row: sqlite3.Row) -> Opportunity:
        metadata = json.loads(row["metadata"])
        for key in _METADATA_LIST_FIELDS:
            metadata.setdefault(key, [])
        return Opportunity(
            id=row["id"],
            type=row["type"],
            title=row["title"],
            organization=row["organization"] or "",
            location=row["location"] or "",
            description=row["description"] or "",
            requirements=json.loads(row["requirements"]),
            link=row["link"] or "",
            deadline=row["deadline"],
            match_score=row["match_score"],
            **metadata,
        )

    def count_opportunities(self, user_id: str | None = None) -> int:
        if user_id is None:
            row = self.conn.execute("SELECT COUNT(*) AS c FROM opportunities").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) AS c FROM opportunities WHERE user_id = ?", (user_id,)
            ).fetchone()
        return int(row["c"]) if row else 0

    def log_search(self, run_at_utc: str, query: str, result_count: int, error_count: int) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO search_logs (run_at, query, result_count, error_count)
                VALUES (?, ?, ?, ?)
                """,
                (run_at_utc, query, result_count, error_count),
            )

    def count_searches(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS c FROM search_logs").fetchone()
        return int(row["c"]) if row else 0

    def close(self) -> None:
        self.conn.close()

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()
