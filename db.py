import sqlite3
import datetime
import json
import math
from contextlib import contextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig
from settings_schema import validate_settings


CATEGORIES = ("Chest", "Back", "Legs", "Shoulders", "Arms", "Core", "Cardio")
DEFAULT_TIMER_SECONDS = 90.0
DEFAULT_ROUTINE_COLOR = "#10B981"


def format_timestamp(value: datetime.datetime) -> str:
    """Return ``value`` as ISO text with a fixed microsecond width."""
    return value.isoformat(timespec="microseconds")


def format_date(value: datetime.datetime) -> str:
    return value.isoformat(timespec="seconds")


def parse_timestamp(value: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(value)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workout_options": (
            """CREATE TABLE workout_options (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL COLLATE NOCASE UNIQUE,
                    category TEXT NOT NULL DEFAULT 'Chest',
                    image_data BLOB,
                    is_barbell_weight INTEGER NOT NULL DEFAULT 0,
                    timer_seconds REAL NOT NULL DEFAULT 90,
                    show_timer INTEGER NOT NULL DEFAULT 1,
                    last_updated TEXT NOT NULL
                );""",
            [
                "id",
                "name",
                "category",
                "image_data",
                "is_barbell_weight",
                "timer_seconds",
                "show_timer",
                "last_updated",
            ],
        ),
        "monthly_workouts": (
            """CREATE TABLE monthly_workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    year INTEGER NOT NULL,
                    month INTEGER NOT NULL,
                    UNIQUE(year, month)
                );""",
            ["id", "year", "month"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TEXT NOT NULL,
                    name TEXT NOT NULL,
                    option_id INTEGER,
                    monthly_id INTEGER,
                    FOREIGN KEY(option_id) REFERENCES workout_options(id) ON DELETE SET NULL,
                    FOREIGN KEY(monthly_id) REFERENCES monthly_workouts(id) ON DELETE SET NULL
                );""",
            ["id", "date", "name", "option_id", "monthly_id"],
        ),
        "sets": (
            """CREATE TABLE sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exercise_id INTEGER NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    order_index INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            ["id", "exercise_id", "reps", "weight", "order_index"],
        ),
        "workout_stats": (
            """CREATE TABLE workout_stats (
                    option_id INTEGER PRIMARY KEY,
                    workout_name TEXT NOT NULL,
                    one_rep_max_history TEXT NOT NULL DEFAULT '[]',
                    max_weight_history TEXT NOT NULL DEFAULT '[]',
                    frequency INTEGER NOT NULL DEFAULT 0,
                    total_volume REAL NOT NULL DEFAULT 0,
                    total_exercises INTEGER NOT NULL DEFAULT 0,
                    total_days INTEGER NOT NULL DEFAULT 0,
                    last_updated TEXT NOT NULL,
                    best_1rm_date TEXT,
                    best_1rm_exercise_id INTEGER,
                    best_1rm_value REAL,
                    best_weight_date TEXT,
                    best_weight_exercise_id INTEGER,
                    best_weight_value REAL,
                    FOREIGN KEY(option_id) REFERENCES workout_options(id) ON DELETE CASCADE
                );""",
            [
                "option_id",
                "workout_name",
                "one_rep_max_history",
                "max_weight_history",
                "frequency",
                "total_volume",
                "total_exercises",
                "total_days",
                "last_updated",
                "best_1rm_date",
                "best_1rm_exercise_id",
                "best_1rm_value",
                "best_weight_date",
                "best_weight_exercise_id",
                "best_weight_value",
            ],
        ),
        "routines": (
            """CREATE TABLE routines (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    color_hex TEXT NOT NULL DEFAULT '#10B981',
                    click_frequency INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "name", "color_hex", "click_frequency"],
        ),
        "routine_items": (
            """CREATE TABLE routine_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    routine_id INTEGER NOT NULL,
                    option_id INTEGER,
                    order_index INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(routine_id) REFERENCES routines(id) ON DELETE CASCADE,
                    FOREIGN KEY(option_id) REFERENCES workout_options(id) ON DELETE SET NULL
                );""",
            ["id", "routine_id", "option_id", "order_index"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()

    def transaction(self):
        """Return a connection context that commits once on exit."""
        return self._connection()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep REFERENCES clauses of other tables pointing at the rebuilt table
            conn.execute("PRAGMA legacy_alter_table=ON;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.commit()
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "order_index":
                        return "0"
                    if col in ("frequency", "total_volume", "total_exercises", "total_days"):
                        return "0"
                    if col in ("one_rep_max_history", "max_weight_history"):
                        return "'[]'"
                    if col == "timer_seconds":
                        return "90"
                    if col == "show_timer":
                        return "1"
                    if col == "is_barbell_weight":
                        return "0"
                    if col == "last_updated":
                        return "'1970-01-01T00:00:00.000000'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "weight_unit": "lb",
            "bar_weight": "45.0",
            "default_timer_seconds": "90",
            "backfill_on_start": "1",
            "theme": "dark",
            "language": "en",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods.

    Every helper accepts an optional open ``conn`` so several repositories
    can take part in one transaction opened with :meth:`transaction`.
    """

    def execute(
        self, query: str, params: Tuple = (), conn: sqlite3.Connection | None = None
    ) -> int:
        if conn is not None:
            return conn.execute(query, params).lastrowid
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(
        self, query: str, params: Tuple = (), conn: sqlite3.Connection | None = None
    ) -> List[Tuple]:
        if conn is not None:
            return conn.execute(query, params).fetchall()
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class WorkoutOptionRepository(BaseRepository):
    """Repository for the library of workout options."""

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("name cannot be empty")
        return cleaned

    @staticmethod
    def _check_category(category: str) -> str:
        if category not in CATEGORIES:
            raise ValueError(f"invalid category: {category}")
        return category

    @staticmethod
    def _check_timer(seconds: float) -> float:
        value = float(seconds)
        if not math.isfinite(value) or value < 0:
            raise ValueError("timer_seconds must be non-negative")
        return value

    def name_taken(
        self,
        name: str,
        exclude_id: int | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        wanted = name.strip().casefold()
        rows = self.fetch_all("SELECT id, name FROM workout_options;", conn=conn)
        return any(
            n.casefold() == wanted and oid != exclude_id for oid, n in rows
        )

    def add(
        self,
        name: str,
        category: str,
        now: datetime.datetime,
        is_barbell_weight: bool = False,
        timer_seconds: float = DEFAULT_TIMER_SECONDS,
        image_data: bytes | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        cleaned = self._clean_name(name)
        self._check_category(category)
        timer = self._check_timer(timer_seconds)
        stamp = format_timestamp(now)
        if conn is None:
            with self._connection() as conn:
                return self.add(
                    cleaned,
                    category,
                    now,
                    is_barbell_weight,
                    timer,
                    image_data,
                    conn=conn,
                )
        if self.name_taken(cleaned, conn=conn):
            raise ValueError("option name already exists")
        option_id = self.execute(
            "INSERT INTO workout_options (name, category, image_data, is_barbell_weight, timer_seconds, show_timer, last_updated) "
            "VALUES (?, ?, ?, ?, ?, 1, ?);",
            (cleaned, category, image_data, int(is_barbell_weight), timer, stamp),
            conn=conn,
        )
        conn.execute(
            "INSERT INTO workout_stats (option_id, workout_name, last_updated) VALUES (?, ?, ?);",
            (option_id, cleaned, stamp),
        )
        return option_id

    def fetch_detail(
        self, option_id: int, conn: sqlite3.Connection | None = None
    ) -> dict:
        rows = self.fetch_all(
            "SELECT id, name, category, image_data, is_barbell_weight, timer_seconds, show_timer, last_updated "
            "FROM workout_options WHERE id = ?;",
            (option_id,),
            conn=conn,
        )
        if not rows:
            raise ValueError("option not found")
        oid, name, category, image, barbell, timer, show_timer, updated = rows[0]
        return {
            "id": oid,
            "name": name,
            "category": category,
            "image_data": image,
            "is_barbell_weight": bool(barbell),
            "timer_seconds": float(timer),
            "show_timer": bool(show_timer),
            "last_updated": updated,
        }

    def fetch_all_options(
        self, conn: sqlite3.Connection | None = None
    ) -> List[Tuple[int, str, str]]:
        return self.fetch_all(
            "SELECT id, name, category FROM workout_options ORDER BY name COLLATE NOCASE;",
            conn=conn,
        )

    def find_by_name(
        self, name: str, conn: sqlite3.Connection | None = None
    ) -> Optional[int]:
        wanted = name.strip().casefold()
        for oid, n, _cat in self.fetch_all_options(conn=conn):
            if n.casefold() == wanted:
                return oid
        return None

    def search(self, query: str) -> List[Tuple[int, str, str]]:
        options = self.fetch_all_options()
        needle = (query or "").strip().casefold()
        if not needle:
            return options
        return [row for row in options if needle in row[1].casefold()]

    def fetch_last_updated(
        self, option_id: int, conn: sqlite3.Connection | None = None
    ) -> str:
        rows = self.fetch_all(
            "SELECT last_updated FROM workout_options WHERE id = ?;",
            (option_id,),
            conn=conn,
        )
        if not rows:
            raise ValueError("option not found")
        return rows[0][0]

    def touch(
        self,
        option_id: int,
        now: datetime.datetime,
        conn: sqlite3.Connection | None = None,
    ) -> str:
        """Advance ``last_updated`` strictly past its previous value."""
        previous = parse_timestamp(self.fetch_last_updated(option_id, conn=conn))
        if now <= previous:
            now = previous + datetime.timedelta(microseconds=1)
        stamp = format_timestamp(now)
        self.execute(
            "UPDATE workout_options SET last_updated = ? WHERE id = ?;",
            (stamp, option_id),
            conn=conn,
        )
        return stamp

    def update(
        self,
        option_id: int,
        now: datetime.datetime,
        *,
        name: str | None = None,
        category: str | None = None,
        is_barbell_weight: bool | None = None,
        timer_seconds: float | None = None,
        show_timer: bool | None = None,
    ) -> None:
        """Apply several field changes at once, or none if any is invalid.

        A new name advances ``last_updated`` so the cached stat picks it up.
        """
        fields: list[tuple[str, object]] = []
        cleaned = None
        if name is not None:
            cleaned = self._clean_name(name)
            fields.append(("name", cleaned))
        if category is not None:
            fields.append(("category", self._check_category(category)))
        if is_barbell_weight is not None:
            fields.append(("is_barbell_weight", int(is_barbell_weight)))
        if timer_seconds is not None:
            fields.append(("timer_seconds", self._check_timer(timer_seconds)))
        if show_timer is not None:
            fields.append(("show_timer", int(show_timer)))
        with self._connection() as conn:
            self.fetch_detail(option_id, conn=conn)
            if cleaned is not None and self.name_taken(
                cleaned, exclude_id=option_id, conn=conn
            ):
                raise ValueError("option name already exists")
            if not fields:
                return
            assignments = ", ".join(f"{col} = ?" for col, _v in fields)
            self.execute(
                f"UPDATE workout_options SET {assignments} WHERE id = ?;",
                tuple(v for _c, v in fields) + (option_id,),
                conn=conn,
            )
            if cleaned is not None:
                self.touch(option_id, now, conn=conn)

    def rename(self, option_id: int, name: str, now: datetime.datetime) -> None:
        self.update(option_id, now, name=name)

    def set_category(self, option_id: int, category: str, now: datetime.datetime) -> None:
        self.update(option_id, now, category=category)

    def set_barbell_weight(
        self, option_id: int, enabled: bool, now: datetime.datetime
    ) -> None:
        self.update(option_id, now, is_barbell_weight=enabled)

    def set_timer(
        self,
        option_id: int,
        seconds: float,
        now: datetime.datetime,
        show_timer: bool | None = None,
    ) -> None:
        self.update(option_id, now, timer_seconds=seconds, show_timer=show_timer)

    def set_image(self, option_id: int, data: bytes | None) -> None:
        self.fetch_detail(option_id)
        self.execute(
            "UPDATE workout_options SET image_data = ? WHERE id = ?;",
            (data, option_id),
        )

    def delete(self, option_id: int) -> None:
        self.fetch_detail(option_id)
        self.execute("DELETE FROM workout_options WHERE id = ?;", (option_id,))


class MonthlyWorkoutRepository(BaseRepository):
    """Repository for the (year, month) buckets of logged exercises."""

    def find_or_create(
        self, year: int, month: int, conn: sqlite3.Connection | None = None
    ) -> int:
        if not 1 <= int(month) <= 12:
            raise ValueError("month must be between 1 and 12")
        self.execute(
            "INSERT OR IGNORE INTO monthly_workouts (year, month) VALUES (?, ?);",
            (year, month),
            conn=conn,
        )
        rows = self.fetch_all(
            "SELECT id FROM monthly_workouts WHERE year = ? AND month = ?;",
            (year, month),
            conn=conn,
        )
        return int(rows[0][0])

    def fetch(self, year: int, month: int) -> Optional[Tuple[int, int, int]]:
        rows = self.fetch_all(
            "SELECT id, year, month FROM monthly_workouts WHERE year = ? AND month = ?;",
            (year, month),
        )
        return rows[0] if rows else None

    def fetch_all_buckets(self) -> List[Tuple[int, int, int]]:
        return self.fetch_all(
            "SELECT id, year, month FROM monthly_workouts ORDER BY year DESC, month DESC;"
        )

    def count(self, year: int, month: int) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM monthly_workouts WHERE year = ? AND month = ?;",
            (year, month),
        )
        return int(rows[0][0])


class ExerciseRepository(BaseRepository):
    """Repository for logged exercise entries."""

    _DETAIL_QUERY = (
        "SELECT e.id, e.date, e.name, e.option_id, e.monthly_id, o.name, o.category, "
        "o.is_barbell_weight, o.timer_seconds "
        "FROM exercises e LEFT JOIN workout_options o ON o.id = e.option_id"
    )

    def __init__(self, db_path: str = "workout.db") -> None:
        super().__init__(db_path)
        self.monthly = MonthlyWorkoutRepository(db_path)

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        eid, date, name, option_id, monthly_id, o_name, o_cat, o_bar, o_timer = row
        return {
            "id": eid,
            "date": date,
            "name": o_name if o_name is not None else name,
            "stored_name": name,
            "option_id": option_id,
            "monthly_id": monthly_id,
            "category": o_cat if o_cat is not None else CATEGORIES[0],
            "is_barbell_weight": bool(o_bar) if o_bar is not None else False,
            "timer_seconds": float(o_timer) if o_timer is not None else DEFAULT_TIMER_SECONDS,
        }

    def add(
        self,
        option_id: Optional[int],
        date: datetime.datetime,
        name: str,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Insert an exercise and file it under its month bucket."""
        stamp = format_date(date)
        monthly_id = self.monthly.find_or_create(date.year, date.month, conn=conn)
        return self.execute(
            "INSERT INTO exercises (date, name, option_id, monthly_id) VALUES (?, ?, ?, ?);",
            (stamp, name, option_id, monthly_id),
            conn=conn,
        )

    def remove(self, exercise_id: int, conn: sqlite3.Connection | None = None) -> None:
        self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,), conn=conn)

    def fetch_detail(
        self, exercise_id: int, conn: sqlite3.Connection | None = None
    ) -> dict:
        rows = self.fetch_all(
            self._DETAIL_QUERY + " WHERE e.id = ?;", (exercise_id,), conn=conn
        )
        if not rows:
            raise ValueError("exercise not found")
        return self._row_to_dict(rows[0])

    def fetch_for_option(
        self, option_id: int, conn: sqlite3.Connection | None = None
    ) -> List[dict]:
        rows = self.fetch_all(
            self._DETAIL_QUERY + " WHERE e.option_id = ? ORDER BY e.date, e.id;",
            (option_id,),
            conn=conn,
        )
        return [self._row_to_dict(r) for r in rows]

    def fetch_for_month(self, monthly_id: int) -> List[dict]:
        rows = self.fetch_all(
            self._DETAIL_QUERY + " WHERE e.monthly_id = ? ORDER BY e.date, e.id;",
            (monthly_id,),
        )
        return [self._row_to_dict(r) for r in rows]

    def fetch_all_exercises(self) -> List[dict]:
        rows = self.fetch_all(self._DETAIL_QUERY + " ORDER BY e.date DESC, e.id DESC;")
        return [self._row_to_dict(r) for r in rows]

    def fetch_unassigned(
        self, conn: sqlite3.Connection | None = None
    ) -> List[Tuple[int, str]]:
        return self.fetch_all(
            "SELECT id, date FROM exercises WHERE monthly_id IS NULL ORDER BY id;",
            conn=conn,
        )

    def set_monthly(
        self, exercise_id: int, monthly_id: int, conn: sqlite3.Connection | None = None
    ) -> None:
        self.execute(
            "UPDATE exercises SET monthly_id = ? WHERE id = ?;",
            (monthly_id, exercise_id),
            conn=conn,
        )

    def set_option(
        self,
        exercise_id: int,
        option_id: Optional[int],
        name: str,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        self.execute(
            "UPDATE exercises SET option_id = ?, name = ? WHERE id = ?;",
            (option_id, name, exercise_id),
            conn=conn,
        )

    def update_name(self, exercise_id: int, name: str) -> None:
        self.execute(
            "UPDATE exercises SET name = ? WHERE id = ?;",
            (name, exercise_id),
        )


class SetRepository(BaseRepository):
    """Repository for sets table operations."""

    @staticmethod
    def validate(reps: int, weight: float) -> Tuple[int, float]:
        if isinstance(reps, bool) or int(reps) != reps:
            raise ValueError("reps must be an integer")
        if reps < 0:
            raise ValueError("reps must be non-negative")
        weight = float(weight)
        if not math.isfinite(weight):
            raise ValueError("weight must be a finite number")
        if weight < 0:
            raise ValueError("weight must be non-negative")
        return int(reps), weight

    def add(
        self,
        exercise_id: int,
        reps: int,
        weight: float,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        reps, weight = self.validate(reps, weight)
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM sets WHERE exercise_id = ?;",
            (exercise_id,),
            conn=conn,
        )
        position = int(rows[0][0]) if rows else 0
        return self.execute(
            "INSERT INTO sets (exercise_id, reps, weight, order_index) VALUES (?, ?, ?, ?);",
            (exercise_id, reps, weight, position),
            conn=conn,
        )

    def update(
        self,
        set_id: int,
        reps: int,
        weight: float,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        reps, weight = self.validate(reps, weight)
        self.execute(
            "UPDATE sets SET reps = ?, weight = ? WHERE id = ?;",
            (reps, weight, set_id),
            conn=conn,
        )

    def remove(self, set_id: int, conn: sqlite3.Connection | None = None) -> None:
        self.execute("DELETE FROM sets WHERE id = ?;", (set_id,), conn=conn)

    def set_order(
        self, exercise_id: int, order: list[int], conn: sqlite3.Connection | None = None
    ) -> None:
        existing = [
            row[0]
            for row in self.fetch_all(
                "SELECT id FROM sets WHERE exercise_id = ? ORDER BY order_index, id;",
                (exercise_id,),
                conn=conn,
            )
        ]
        if set(order) != set(existing) or len(order) != len(existing):
            raise ValueError("invalid order")
        for pos, sid in enumerate(order):
            self.execute(
                "UPDATE sets SET order_index = ? WHERE id = ?;",
                (pos, sid),
                conn=conn,
            )

    def synchronize_indices(
        self, exercise_id: int, conn: sqlite3.Connection | None = None
    ) -> None:
        """Renumber ``order_index`` to 0..n-1 keeping the current order."""
        rows = self.fetch_all(
            "SELECT id FROM sets WHERE exercise_id = ? ORDER BY order_index, id;",
            (exercise_id,),
            conn=conn,
        )
        for pos, (sid,) in enumerate(rows):
            self.execute(
                "UPDATE sets SET order_index = ? WHERE id = ?;",
                (pos, sid),
                conn=conn,
            )

    def fetch_exercise_id(
        self, set_id: int, conn: sqlite3.Connection | None = None
    ) -> int:
        rows = self.fetch_all(
            "SELECT exercise_id FROM sets WHERE id = ?;",
            (set_id,),
            conn=conn,
        )
        if not rows:
            raise ValueError("set not found")
        return int(rows[0][0])

    def fetch_for_exercise(
        self, exercise_id: int, conn: sqlite3.Connection | None = None
    ) -> List[Tuple[int, int, float, int]]:
        return self.fetch_all(
            "SELECT id, reps, weight, order_index FROM sets WHERE exercise_id = ? ORDER BY order_index, id;",
            (exercise_id,),
            conn=conn,
        )

    def fetch_for_option(
        self, option_id: int, conn: sqlite3.Connection | None = None
    ) -> List[Tuple[int, str, int, float]]:
        """Return ``(exercise_id, date, reps, weight)`` for every set of an option."""
        return self.fetch_all(
            "SELECT e.id, e.date, s.reps, s.weight FROM sets s "
            "JOIN exercises e ON s.exercise_id = e.id "
            "WHERE e.option_id = ? ORDER BY e.date, e.id, s.order_index;",
            (option_id,),
            conn=conn,
        )

    def fetch_for_month(self, monthly_id: int) -> List[Tuple[int, str, int, float]]:
        return self.fetch_all(
            "SELECT e.id, e.date, s.reps, s.weight FROM sets s "
            "JOIN exercises e ON s.exercise_id = e.id "
            "WHERE e.monthly_id = ? ORDER BY e.date, e.id, s.order_index;",
            (monthly_id,),
        )


class WorkoutStatRepository(BaseRepository):
    """Repository for the cached per-option statistics."""

    _COLUMNS = (
        "option_id, workout_name, one_rep_max_history, max_weight_history, frequency, "
        "total_volume, total_exercises, total_days, last_updated, best_1rm_date, "
        "best_1rm_exercise_id, best_1rm_value, best_weight_date, best_weight_exercise_id, "
        "best_weight_value"
    )

    def fetch(
        self, option_id: int, conn: sqlite3.Connection | None = None
    ) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_stats WHERE option_id = ?;",
            (option_id,),
            conn=conn,
        )
        if not rows:
            return None
        (
            oid,
            name,
            orm_hist,
            weight_hist,
            frequency,
            volume,
            total_exercises,
            total_days,
            updated,
            orm_date,
            orm_eid,
            orm_value,
            w_date,
            w_eid,
            w_value,
        ) = rows[0]
        return {
            "option_id": oid,
            "workout_name": name,
            "one_rep_max_history": json.loads(orm_hist),
            "max_weight_history": json.loads(weight_hist),
            "frequency": int(frequency),
            "total_volume": float(volume),
            "total_exercises": int(total_exercises),
            "total_days": int(total_days),
            "last_updated": updated,
            "max_one_rep": (
                {"date": orm_date, "exercise_id": orm_eid, "value": float(orm_value)}
                if orm_value is not None
                else None
            ),
            "max_weight": (
                {"date": w_date, "exercise_id": w_eid, "value": float(w_value)}
                if w_value is not None
                else None
            ),
        }

    def save(self, stat: dict, conn: sqlite3.Connection | None = None) -> None:
        orm = stat.get("max_one_rep") or {}
        best_weight = stat.get("max_weight") or {}
        self.execute(
            f"INSERT INTO workout_stats ({self._COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(option_id) DO UPDATE SET "
            "workout_name=excluded.workout_name, "
            "one_rep_max_history=excluded.one_rep_max_history, "
            "max_weight_history=excluded.max_weight_history, "
            "frequency=excluded.frequency, total_volume=excluded.total_volume, "
            "total_exercises=excluded.total_exercises, total_days=excluded.total_days, "
            "last_updated=excluded.last_updated, best_1rm_date=excluded.best_1rm_date, "
            "best_1rm_exercise_id=excluded.best_1rm_exercise_id, "
            "best_1rm_value=excluded.best_1rm_value, "
            "best_weight_date=excluded.best_weight_date, "
            "best_weight_exercise_id=excluded.best_weight_exercise_id, "
            "best_weight_value=excluded.best_weight_value;",
            (
                stat["option_id"],
                stat["workout_name"],
                json.dumps(stat["one_rep_max_history"]),
                json.dumps(stat["max_weight_history"]),
                stat["frequency"],
                stat["total_volume"],
                stat["total_exercises"],
                stat["total_days"],
                stat["last_updated"],
                orm.get("date"),
                orm.get("exercise_id"),
                orm.get("value"),
                best_weight.get("date"),
                best_weight.get("exercise_id"),
                best_weight.get("value"),
            ),
            conn=conn,
        )

    def fetch_option_ids(self) -> List[int]:
        return [
            int(r[0])
            for r in self.fetch_all("SELECT option_id FROM workout_stats ORDER BY option_id;")
        ]


class RoutineRepository(BaseRepository):
    """Repository for named workout routines."""

    def create(self, name: str, color_hex: str = DEFAULT_ROUTINE_COLOR) -> int:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("name cannot be empty")
        return self.execute(
            "INSERT INTO routines (name, color_hex, click_frequency) VALUES (?, ?, 0);",
            (cleaned, color_hex),
        )

    def fetch_all_routines(self) -> List[Tuple[int, str, str, int]]:
        return self.fetch_all(
            "SELECT id, name, color_hex, click_frequency FROM routines "
            "ORDER BY click_frequency DESC, name COLLATE NOCASE;"
        )

    def fetch_detail(
        self, routine_id: int, conn: sqlite3.Connection | None = None
    ) -> Tuple[int, str, str, int]:
        rows = self.fetch_all(
            "SELECT id, name, color_hex, click_frequency FROM routines WHERE id = ?;",
            (routine_id,),
            conn=conn,
        )
        if not rows:
            raise ValueError("routine not found")
        return rows[0]

    def rename(self, routine_id: int, name: str) -> None:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("name cannot be empty")
        self.fetch_detail(routine_id)
        self.execute(
            "UPDATE routines SET name = ? WHERE id = ?;", (cleaned, routine_id)
        )

    def increment_clicks(
        self, routine_id: int, conn: sqlite3.Connection | None = None
    ) -> None:
        self.execute(
            "UPDATE routines SET click_frequency = click_frequency + 1 WHERE id = ?;",
            (routine_id,),
            conn=conn,
        )

    def delete(self, routine_id: int) -> None:
        self.fetch_detail(routine_id)
        self.execute("DELETE FROM routines WHERE id = ?;", (routine_id,))


class RoutineItemRepository(BaseRepository):
    """Repository for the ordered options of a routine."""

    def add(
        self, routine_id: int, option_id: int, conn: sqlite3.Connection | None = None
    ) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM routine_items WHERE routine_id = ?;",
            (routine_id,),
            conn=conn,
        )
        position = int(rows[0][0]) if rows else 0
        return self.execute(
            "INSERT INTO routine_items (routine_id, option_id, order_index) VALUES (?, ?, ?);",
            (routine_id, option_id, position),
            conn=conn,
        )

    def bulk_add(self, routine_id: int, option_ids: Iterable[int]) -> list[int]:
        with self._connection() as conn:
            return [self.add(routine_id, oid, conn=conn) for oid in option_ids]

    def remove(self, item_id: int) -> None:
        with self._connection() as conn:
            rows = self.fetch_all(
                "SELECT routine_id FROM routine_items WHERE id = ?;",
                (item_id,),
                conn=conn,
            )
            if not rows:
                raise ValueError("routine item not found")
            self.execute("DELETE FROM routine_items WHERE id = ?;", (item_id,), conn=conn)
            self.synchronize_indices(int(rows[0][0]), conn=conn)

    def reorder(self, routine_id: int, order: list[int]) -> None:
        with self._connection() as conn:
            existing = [
                r[0]
                for r in self.fetch_all(
                    "SELECT id FROM routine_items WHERE routine_id = ? ORDER BY order_index, id;",
                    (routine_id,),
                    conn=conn,
                )
            ]
            if set(order) != set(existing) or len(order) != len(existing):
                raise ValueError("invalid order")
            for pos, item_id in enumerate(order):
                self.execute(
                    "UPDATE routine_items SET order_index = ? WHERE id = ?;",
                    (pos, item_id),
                    conn=conn,
                )
            self.synchronize_indices(routine_id, conn=conn)

    def synchronize_indices(
        self, routine_id: int, conn: sqlite3.Connection | None = None
    ) -> None:
        rows = self.fetch_all(
            "SELECT id FROM routine_items WHERE routine_id = ? ORDER BY order_index, id;",
            (routine_id,),
            conn=conn,
        )
        for pos, (item_id,) in enumerate(rows):
            self.execute(
                "UPDATE routine_items SET order_index = ? WHERE id = ?;",
                (pos, item_id),
                conn=conn,
            )

    def fetch_for_routine(
        self, routine_id: int
    ) -> List[Tuple[int, Optional[int], Optional[str], int]]:
        """Return ``(item_id, option_id, option_name, order_index)`` in order."""
        return self.fetch_all(
            "SELECT i.id, i.option_id, o.name, i.order_index FROM routine_items i "
            "LEFT JOIN workout_options o ON o.id = i.option_id "
            "WHERE i.routine_id = ? ORDER BY i.order_index, i.id;",
            (routine_id,),
        )


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    _BOOL_KEYS = {"backfill_on_start"}

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | bool] = {}
        for k, v in rows:
            if k in self._BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = str(value)
                if key in self._BOOL_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(float(value)))

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        data = self._raw_all_settings()
        for k in self._BOOL_KEYS:
            data[k] = bool(data.get(k, False))
        return data

    def update(self, values: dict) -> None:
        """Validate and persist several settings at once."""
        merged = {**self.all_settings(), **values}
        validate_settings(merged)
        with self._connection() as conn:
            for key, value in values.items():
                if key in self._BOOL_KEYS:
                    value = "1" if value in {True, 1, "1", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, str(value)),
                )
        self._sync_to_yaml()
