import json
import os

import aiosqlite

from clinassist.analysis.models import MetricValue, VitalReading, VitalsPeriod
from clinassist.config.settings import settings


def _row_to_reading(row: aiosqlite.Row) -> VitalReading:
    return VitalReading(
        id=row["id"],
        patient_id=row["patient_id"],
        metric_type=row["metric_type"],
        metric_value=MetricValue.model_validate(json.loads(row["metric_value"] or "{}")),
        recorded_at=row["recorded_at"],
        notes=row["notes"],
    )


class VitalsStore:
    """sqlite-backed health metrics, read by the vitals analyzer."""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or settings.DB_PATH

    async def init_db(self):
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS health_metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    patient_id INTEGER NOT NULL,
                    metric_type TEXT NOT NULL,
                    metric_value TEXT NOT NULL,
                    recorded_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
                    notes TEXT
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_health_metrics_patient
                ON health_metrics (patient_id, recorded_at)
            """)
            await db.commit()

    async def record_vital(
        self,
        patient_id: int,
        metric_type: str,
        metric_value: MetricValue,
        notes: str | None = None,
        recorded_at: str | None = None,
    ) -> VitalReading:
        value_json = metric_value.model_dump_json(exclude_none=True)
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            if recorded_at:
                cursor = await db.execute(
                    "INSERT INTO health_metrics (patient_id, metric_type, metric_value, notes, recorded_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (patient_id, metric_type, value_json, notes, recorded_at),
                )
            else:
                cursor = await db.execute(
                    "INSERT INTO health_metrics (patient_id, metric_type, metric_value, notes) VALUES (?, ?, ?, ?)",
                    (patient_id, metric_type, value_json, notes),
                )
            await db.commit()
            cursor = await db.execute("SELECT * FROM health_metrics WHERE id = ?", (cursor.lastrowid,))
            return _row_to_reading(await cursor.fetchone())

    async def get_vitals_history(self, patient_id: int, limit: int | None = None) -> list[VitalReading]:
        """Readings for a patient, most recent first."""
        query = "SELECT * FROM health_metrics WHERE patient_id = ? ORDER BY recorded_at DESC, id DESC"
        params: tuple = (patient_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (patient_id, limit)
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [_row_to_reading(row) for row in rows]

    async def fetch_vitals(self, patient_id: int, period: VitalsPeriod) -> list[VitalReading]:
        return await self.get_vitals_history(patient_id, limit=VitalsPeriod(period).reading_limit)
