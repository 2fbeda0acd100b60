import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, ExerciseRepository, WorkoutStatRepository


class TestSchemaMigration:
    def test_drops_existing_backup_table(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE sets (id INTEGER PRIMARY KEY AUTOINCREMENT, exercise_id INTEGER, reps INTEGER, weight REAL)"
        )
        conn.execute("INSERT INTO sets (exercise_id, reps, weight) VALUES (1, 5, 100.0)")
        conn.execute("CREATE TABLE sets_old (id INTEGER)")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='sets_old'"
        )
        assert cur.fetchone() is None
        cur = conn.execute("PRAGMA table_info(sets)")
        cols = [row[1] for row in cur.fetchall()]
        assert "order_index" in cols
        assert conn.execute("SELECT reps, weight, order_index FROM sets").fetchall() == [
            (5, 100.0, 0)
        ]
        conn.close()

    def test_stats_table_gains_columns(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE workout_stats (option_id INTEGER PRIMARY KEY, workout_name TEXT NOT NULL, last_updated TEXT NOT NULL)"
        )
        conn.execute(
            "INSERT INTO workout_stats VALUES (1, 'Bench', '2026-01-01T00:00:00.000000')"
        )
        conn.commit()
        conn.close()

        stat = WorkoutStatRepository(str(db_file)).fetch(1)
        assert stat["workout_name"] == "Bench"
        assert stat["one_rep_max_history"] == []
        assert stat["total_days"] == 0
        assert stat["max_one_rep"] is None

    def test_schema_is_idempotent(self, tmp_path):
        db_file = str(tmp_path / "test.db")
        Database(db_file)
        Database(db_file)
        conn = sqlite3.connect(db_file)
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()
        assert {
            "workout_options",
            "monthly_workouts",
            "exercises",
            "sets",
            "workout_stats",
            "routines",
            "routine_items",
            "settings",
        } <= tables
        assert ExerciseRepository(db_file).fetch_all_exercises() == []
