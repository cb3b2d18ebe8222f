"""Tests for PatientDatabase: schema creation, versioning, lifecycle."""

from __future__ import annotations

import pytest

from copdwatch.core.storage.database import SCHEMA_VERSION, DatabaseError, PatientDatabase


class TestInitialization:
    def test_in_memory_initialize(self):
        db = PatientDatabase(":memory:")
        db.initialize()
        assert db.connection is not None
        db.close()

    def test_double_initialize_is_idempotent(self):
        db = PatientDatabase(":memory:")
        db.initialize()
        conn1 = db.connection
        db.initialize()
        assert db.connection is conn1
        db.close()

    def test_connection_before_init_raises(self):
        db = PatientDatabase(":memory:")
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_context_manager(self):
        with PatientDatabase(":memory:") as db:
            assert db.connection is not None
        with pytest.raises(DatabaseError):
            _ = db.connection

    def test_unopenable_path_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        db = PatientDatabase(str(blocker / "patients.db"))
        with pytest.raises(DatabaseError, match="Cannot open"):
            db.initialize()


class TestSchema:
    def test_schema_version_recorded(self):
        with PatientDatabase(":memory:") as db:
            assert db.get_schema_version() == SCHEMA_VERSION

    def test_tables_created(self):
        expected_tables = {
            "patients",
            "measurements",
            "medications",
            "medication_schedules",
            "medication_logs",
            "schema_version",
        }
        with PatientDatabase(":memory:") as db:
            cursor = db.connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            tables = {row[0] for row in cursor.fetchall()}
            for t in expected_tables:
                assert t in tables, f"Missing table: {t}"

    def test_indexes_created(self):
        expected_indexes = {
            "idx_measurements_patient_ts",
            "idx_medications_patient",
            "idx_schedules_medication",
            "idx_logs_patient_taken",
        }
        with PatientDatabase(":memory:") as db:
            cursor = db.connection.execute("SELECT name FROM sqlite_master WHERE type='index'")
            indexes = {row[0] for row in cursor.fetchall()}
            for idx in expected_indexes:
                assert idx in indexes, f"Missing index: {idx}"

    def test_foreign_keys_enabled(self):
        with PatientDatabase(":memory:") as db:
            cursor = db.connection.execute("PRAGMA foreign_keys")
            assert cursor.fetchone()[0] == 1

    def test_wal_mode_enabled(self):
        with PatientDatabase(":memory:") as db:
            mode = db.connection.execute("PRAGMA journal_mode").fetchone()[0].lower()
            # In-memory databases report 'memory' instead of 'wal'
            assert mode in ("wal", "memory")


class TestFileDatabase:
    def test_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "patients.db"
        db = PatientDatabase(str(db_path))
        db.initialize()
        assert db_path.exists()
        assert db.get_schema_version() == SCHEMA_VERSION
        db.close()

    def test_reopen_keeps_single_version_row(self, tmp_path):
        db_path = str(tmp_path / "patients.db")
        with PatientDatabase(db_path):
            pass
        with PatientDatabase(db_path) as db:
            rows = db.connection.execute("SELECT COUNT(*) FROM schema_version").fetchone()
            assert rows[0] == 1


class TestClose:
    def test_close_makes_connection_unavailable(self):
        db = PatientDatabase(":memory:")
        db.initialize()
        db.close()
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_double_close_is_safe(self):
        db = PatientDatabase(":memory:")
        db.initialize()
        db.close()
        db.close()
