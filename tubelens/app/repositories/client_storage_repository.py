from __future__ import annotations

from tubelens.app.repositories.common import utc_now_iso
from tubelens.app.repositories.database import Database

DEFAULT_STORAGE_QUOTA_BYTES = 5 * 1024 * 1024


class StorageQuotaExceededError(Exception):
    def __init__(self, key: str, *, required_bytes: int, quota_bytes: int) -> None:
        super().__init__(
            f"Client storage quota exceeded writing {key!r}: "
            f"{required_bytes} bytes needed, quota is {quota_bytes} bytes."
        )
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class ClientStorageRepository:
    """Persistent string key/value storage with a byte quota.

    Size accounting counts UTF-8 bytes of every key plus its value, so a
    write that would push the total over the quota is rejected as a whole.
    """

    def __init__(self, db: Database, *, quota_bytes: int = DEFAULT_STORAGE_QUOTA_BYTES) -> None:
        self._db = db
        self._quota_bytes = max(1, quota_bytes)

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    def get_item(self, key: str) -> str | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT value_text FROM client_storage WHERE storage_key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return str(row["value_text"])

    def set_item(self, key: str, value: str) -> None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(LENGTH(CAST(storage_key AS BLOB))
                    + LENGTH(CAST(value_text AS BLOB))), 0) AS used
                FROM client_storage
                WHERE storage_key != ?
                """,
                (key,),
            ).fetchone()
            used_by_others = int(row["used"]) if row is not None else 0
            required = used_by_others + _entry_size(key, value)
            if required > self._quota_bytes:
                raise StorageQuotaExceededError(
                    key,
                    required_bytes=required,
                    quota_bytes=self._quota_bytes,
                )
            conn.execute(
                """
                INSERT INTO client_storage (storage_key, value_text, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(storage_key) DO UPDATE SET
                    value_text = excluded.value_text,
                    updated_at = excluded.updated_at
                """,
                (key, value, utc_now_iso()),
            )

    def remove_item(self, key: str) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM client_storage WHERE storage_key = ?", (key,))

    def clear(self) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM client_storage")

    def keys(self) -> list[str]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT storage_key FROM client_storage ORDER BY storage_key"
            ).fetchall()
        return [str(row["storage_key"]) for row in rows]

    def size_bytes(self) -> int:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT storage_key, value_text FROM client_storage").fetchall()
        return sum(_entry_size(str(row["storage_key"]), str(row["value_text"])) for row in rows)


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))
