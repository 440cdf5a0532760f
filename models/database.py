"""SQLite database for asset peaks, prices, drawdown alerts, levels and devices."""
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from models.alerts import DrawdownAlert
from models.assets import PeakRecord, parse_timestamp
from models.enums import AlertKind, AssetClass
from models.levels import LevelState
from monitor.errors import PersistenceFailure

logger = logging.getLogger("guardian.db")


def _iso(dt):
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


class Database:
    def __init__(self, db_path="data/guardian.db"):
        self.db_path = db_path
        self.conn = None

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    @contextmanager
    def _write(self, what, symbol=None):
        """Run a write and commit; sqlite errors surface as PersistenceFailure."""
        try:
            yield self.conn
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Write failed ({what}): {e}")
            raise PersistenceFailure(f"{what} failed: {e}", symbol=symbol) from e

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS portfolio_assets (
                symbol TEXT PRIMARY KEY,
                name TEXT,
                asset_class TEXT NOT NULL DEFAULT 'ETF',
                start_price REAL NOT NULL,
                start_observed_at TEXT NOT NULL,
                peak_price REAL NOT NULL,
                peak_observed_at TEXT NOT NULL,
                alert_threshold_pct REAL NOT NULL DEFAULT 15,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS price_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                price REAL NOT NULL,
                previous_close REAL,
                change REAL,
                change_pct REAL,
                source TEXT,
                observed_at TEXT NOT NULL,
                UNIQUE (symbol, observed_at)
            );

            CREATE INDEX IF NOT EXISTS idx_prices_symbol_time
                ON price_history(symbol, observed_at);

            CREATE TABLE IF NOT EXISTS drawdown_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                asset_name TEXT,
                kind TEXT NOT NULL,
                drawdown_pct REAL NOT NULL,
                threshold_pct REAL NOT NULL,
                current_price REAL NOT NULL,
                peak_price REAL NOT NULL,
                triggered_at TEXT NOT NULL,
                notified INTEGER DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_symbol_time
                ON drawdown_alerts(symbol, triggered_at);

            CREATE TABLE IF NOT EXISTS drawdown_levels (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                level REAL NOT NULL,
                peak_price REAL NOT NULL,
                percentage REAL NOT NULL,
                used INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                used_at TEXT,
                UNIQUE (symbol, level, peak_price)
            );

            CREATE TABLE IF NOT EXISTS device_tokens (
                token TEXT PRIMARY KEY,
                platform TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            );
        """)
        self.conn.commit()

    # --- Portfolio assets / peaks ---

    def provision_asset(self, symbol, name, asset_class, start_price, observed_at,
                        threshold_pct=15.0, active=True):
        """Create the peak record for an asset. Returns False if it already exists."""
        ts = _iso(observed_at)
        with self._write("provision asset", symbol) as conn:
            cur = conn.execute("""
                INSERT OR IGNORE INTO portfolio_assets
                (symbol, name, asset_class, start_price, start_observed_at,
                 peak_price, peak_observed_at, alert_threshold_pct, active,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (symbol, name, AssetClass(asset_class).value, start_price, ts, start_price, ts,
                  threshold_pct, int(active), _now_iso(), _now_iso()))
        return cur.rowcount == 1

    def get_peak(self, symbol):
        row = self.conn.execute(
            "SELECT * FROM portfolio_assets WHERE symbol = ?", (symbol,)
        ).fetchone()
        return PeakRecord.from_row(row) if row else None

    def list_peaks(self):
        rows = self.conn.execute(
            "SELECT * FROM portfolio_assets ORDER BY symbol ASC"
        ).fetchall()
        return [PeakRecord.from_row(r) for r in rows]

    def compare_and_set_peak(self, symbol, price, observed_at):
        """Raise the stored peak to ``price`` only if it is strictly higher.

        The comparison happens inside the UPDATE, so a concurrent writer that
        already stored a higher peak wins. Returns True if a row changed.
        """
        with self._write("peak update", symbol) as conn:
            cur = conn.execute("""
                UPDATE portfolio_assets
                SET peak_price = ?, peak_observed_at = ?, updated_at = ?
                WHERE symbol = ? AND peak_price < ?
            """, (price, _iso(observed_at), _now_iso(), symbol, price))
        return cur.rowcount == 1

    def reset_peak(self, symbol, price, observed_at):
        """Operator reset: overwrite the peak unconditionally."""
        with self._write("peak reset", symbol) as conn:
            cur = conn.execute("""
                UPDATE portfolio_assets
                SET peak_price = ?, peak_observed_at = ?, updated_at = ?
                WHERE symbol = ?
            """, (price, _iso(observed_at), _now_iso(), symbol))
        return cur.rowcount == 1

    def set_asset_active(self, symbol, active):
        with self._write("set active", symbol) as conn:
            cur = conn.execute(
                "UPDATE portfolio_assets SET active = ?, updated_at = ? WHERE symbol = ?",
                (int(active), _now_iso(), symbol),
            )
        return cur.rowcount == 1

    def set_asset_threshold(self, symbol, threshold_pct):
        with self._write("set threshold", symbol) as conn:
            cur = conn.execute(
                "UPDATE portfolio_assets SET alert_threshold_pct = ?, updated_at = ? WHERE symbol = ?",
                (threshold_pct, _now_iso(), symbol),
            )
        return cur.rowcount == 1

    # --- Price History ---

    def save_price(self, quote):
        with self._write("save price", quote.symbol) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO price_history
                (symbol, price, previous_close, change, change_pct, source, observed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (quote.symbol, quote.price, quote.previous_close, quote.change,
                  quote.change_pct, quote.source, _iso(quote.as_of)))
        logger.debug(f"Saved price {quote.symbol} {quote.price}")

    def get_price_history(self, symbol, limit=30):
        rows = self.conn.execute("""
            SELECT * FROM price_history WHERE symbol = ?
            ORDER BY observed_at DESC LIMIT ?
        """, (symbol, limit)).fetchall()
        return [dict(r) for r in rows]

    def get_latest_price(self, symbol):
        rows = self.get_price_history(symbol, limit=1)
        return rows[0] if rows else None

    # --- Drawdown Alerts ---

    def save_drawdown_alert(self, alert):
        with self._write("save alert", alert.symbol) as conn:
            cur = conn.execute("""
                INSERT INTO drawdown_alerts
                (symbol, asset_name, kind, drawdown_pct, threshold_pct,
                 current_price, peak_price, triggered_at, notified)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                alert.symbol, alert.asset_name, alert.kind.value, alert.drawdown_pct,
                alert.threshold_pct, alert.current_price, alert.peak_price,
                _iso(alert.triggered_at), int(alert.notified),
            ))
        alert.id = cur.lastrowid
        return alert.id

    def mark_alert_notified(self, alert_id):
        with self._write("mark alert notified") as conn:
            conn.execute(
                "UPDATE drawdown_alerts SET notified = 1 WHERE id = ?", (alert_id,)
            )

    def get_last_drawdown_alert(self, symbol):
        """Most recent alert row for a symbol (ties broken by insertion order)."""
        row = self.conn.execute("""
            SELECT * FROM drawdown_alerts
            WHERE symbol = ? ORDER BY triggered_at DESC, id DESC LIMIT 1
        """, (symbol,)).fetchone()
        return self._alert_from_row(row) if row else None

    def get_recent_alerts(self, limit=50, symbol=None, include_markers=False):
        query = "SELECT * FROM drawdown_alerts WHERE 1=1"
        params = []
        if symbol:
            query += " AND symbol = ?"
            params.append(symbol)
        if not include_markers:
            query += " AND kind != ?"
            params.append(AlertKind.RECOVERY.value)
        query += " ORDER BY triggered_at DESC, id DESC LIMIT ?"
        params.append(limit)
        rows = self.conn.execute(query, params).fetchall()
        return [self._alert_from_row(r) for r in rows]

    @staticmethod
    def _alert_from_row(row):
        return DrawdownAlert(
            id=row["id"],
            symbol=row["symbol"],
            asset_name=row["asset_name"] or "",
            kind=AlertKind(row["kind"]),
            drawdown_pct=row["drawdown_pct"],
            threshold_pct=row["threshold_pct"],
            current_price=row["current_price"],
            peak_price=row["peak_price"],
            triggered_at=parse_timestamp(row["triggered_at"]),
            notified=bool(row["notified"]),
        )

    # --- Drawdown Levels ---

    def get_level_states(self, symbol, peak_price):
        """Level rows scoped to (symbol, peak_price)."""
        rows = self.conn.execute("""
            SELECT * FROM drawdown_levels
            WHERE symbol = ? AND peak_price = ?
            ORDER BY level DESC
        """, (symbol, peak_price)).fetchall()
        return [self._level_from_row(r) for r in rows]

    def get_all_level_states(self, symbol=None):
        query = "SELECT * FROM drawdown_levels"
        params = []
        if symbol:
            query += " WHERE symbol = ?"
            params.append(symbol)
        query += " ORDER BY symbol ASC, created_at DESC, level DESC"
        return [self._level_from_row(r) for r in self.conn.execute(query, params).fetchall()]

    def insert_level_state(self, state):
        """Create a level row; an existing row for the same key is left alone."""
        return bool(self.insert_level_states([state]))

    def insert_level_states(self, states):
        """Create level rows in one transaction; returns the states actually inserted."""
        inserted = []
        symbol = states[0].symbol if states else None
        with self._write("insert levels", symbol) as conn:
            for state in states:
                cur = conn.execute("""
                    INSERT OR IGNORE INTO drawdown_levels
                    (symbol, level, peak_price, percentage, used, created_at, used_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (state.symbol, state.level, state.peak_price, state.percentage,
                      int(state.used), _iso(state.created_at), _iso(state.used_at)))
                if cur.rowcount == 1:
                    state.id = cur.lastrowid
                    inserted.append(state)
        return inserted

    def mark_level_used(self, symbol, level, peak_price, percentage, used_at):
        """Mark a level used for a peak, creating the row if it never became eligible."""
        with self._write("mark level used", symbol) as conn:
            conn.execute("""
                INSERT INTO drawdown_levels
                (symbol, level, peak_price, percentage, used, created_at, used_at)
                VALUES (?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT (symbol, level, peak_price)
                DO UPDATE SET used = 1, used_at = excluded.used_at
            """, (symbol, level, peak_price, percentage, _iso(used_at), _iso(used_at)))

    @staticmethod
    def _level_from_row(row):
        return LevelState(
            id=row["id"],
            symbol=row["symbol"],
            level=row["level"],
            peak_price=row["peak_price"],
            percentage=row["percentage"],
            used=bool(row["used"]),
            created_at=parse_timestamp(row["created_at"]),
            used_at=parse_timestamp(row["used_at"]),
        )

    # --- Device Tokens ---

    def add_device_token(self, token, platform=None):
        with self._write("add device token") as conn:
            cur = conn.execute("""
                INSERT INTO device_tokens (token, platform, active, created_at)
                VALUES (?, ?, 1, ?)
                ON CONFLICT (token) DO UPDATE SET active = 1, platform = excluded.platform
            """, (token, platform, _now_iso()))
        return cur.rowcount == 1

    def remove_device_token(self, token):
        with self._write("remove device token") as conn:
            cur = conn.execute("DELETE FROM device_tokens WHERE token = ?", (token,))
        return cur.rowcount == 1

    def get_device_tokens(self, active_only=True):
        query = "SELECT * FROM device_tokens"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY created_at ASC, rowid ASC"
        return [dict(r) for r in self.conn.execute(query).fetchall()]
