"""Tests for the database module."""
import pytest
from datetime import datetime, timedelta, timezone

from models.alerts import DrawdownAlert
from models.assets import PriceQuote
from models.enums import AlertKind, AssetClass
from models.levels import LevelState
from monitor.errors import PersistenceFailure

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _provision(db, symbol="XYZ", price=100.0, threshold=15.0):
    return db.provision_asset(symbol, "Test", AssetClass.ETF, price, T0, threshold)


def test_table_creation(temp_db):
    """Verify all tables exist after init."""
    tables = temp_db.conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    ).fetchall()
    names = {t["name"] for t in tables}
    assert "portfolio_assets" in names
    assert "price_history" in names
    assert "drawdown_alerts" in names
    assert "drawdown_levels" in names
    assert "device_tokens" in names


def test_empty_db_returns_none(temp_db):
    assert temp_db.get_peak("XYZ") is None
    assert temp_db.list_peaks() == []
    assert temp_db.get_latest_price("XYZ") is None
    assert temp_db.get_last_drawdown_alert("XYZ") is None
    assert temp_db.get_recent_alerts() == []


def test_provision_asset(temp_db):
    assert _provision(temp_db) is True
    peak = temp_db.get_peak("XYZ")
    assert peak.peak_price == 100.0
    assert peak.start_price == 100.0
    assert peak.asset_class == AssetClass.ETF
    assert peak.alert_threshold_pct == 15.0
    assert peak.active is True
    assert peak.peak_observed_at == T0


def test_provision_is_idempotent(temp_db):
    _provision(temp_db, price=100.0)
    assert _provision(temp_db, price=50.0) is False
    assert temp_db.get_peak("XYZ").peak_price == 100.0


def test_asset_class_stored_as_value(temp_db):
    _provision(temp_db)
    row = temp_db.conn.execute("SELECT asset_class FROM portfolio_assets").fetchone()
    assert row["asset_class"] == "ETF"


def test_compare_and_set_only_raises(temp_db):
    _provision(temp_db, price=100.0)
    assert temp_db.compare_and_set_peak("XYZ", 90.0, T0) is False
    assert temp_db.compare_and_set_peak("XYZ", 100.0, T0) is False
    assert temp_db.compare_and_set_peak("XYZ", 110.0, T0 + timedelta(hours=1)) is True
    peak = temp_db.get_peak("XYZ")
    assert peak.peak_price == 110.0
    assert peak.peak_observed_at == T0 + timedelta(hours=1)


def test_reset_peak_can_lower(temp_db):
    _provision(temp_db, price=100.0)
    assert temp_db.reset_peak("XYZ", 80.0, T0) is True
    assert temp_db.get_peak("XYZ").peak_price == 80.0
    assert temp_db.reset_peak("NOPE", 80.0, T0) is False


def test_set_active_and_threshold(temp_db):
    _provision(temp_db)
    assert temp_db.set_asset_active("XYZ", False)
    assert temp_db.set_asset_threshold("XYZ", 20.0)
    peak = temp_db.get_peak("XYZ")
    assert peak.active is False
    assert peak.alert_threshold_pct == 20.0
    assert temp_db.set_asset_active("NOPE", True) is False


def test_price_history(temp_db):
    for i, price in enumerate([100.0, 101.0, 99.5]):
        temp_db.save_price(PriceQuote(symbol="XYZ", price=price, previous_close=100.0,
                                      as_of=T0 + timedelta(minutes=5 * i), source="test"))
    history = temp_db.get_price_history("XYZ")
    assert [h["price"] for h in history] == [99.5, 101.0, 100.0]
    latest = temp_db.get_latest_price("XYZ")
    assert latest["price"] == 99.5
    assert latest["change_pct"] == pytest.approx(-0.5)


def test_price_history_unique_on_timestamp(temp_db):
    temp_db.save_price(PriceQuote(symbol="XYZ", price=100.0, as_of=T0))
    temp_db.save_price(PriceQuote(symbol="XYZ", price=101.0, as_of=T0))
    history = temp_db.get_price_history("XYZ")
    assert len(history) == 1
    assert history[0]["price"] == 101.0


def test_save_and_get_last_alert(temp_db):
    first = DrawdownAlert(symbol="XYZ", drawdown_pct=-16.0, threshold_pct=15.0,
                          current_price=84.0, peak_price=100.0, triggered_at=T0)
    second = DrawdownAlert(symbol="XYZ", drawdown_pct=-17.5, threshold_pct=15.0,
                           current_price=82.5, peak_price=100.0, kind=AlertKind.VARIATION,
                           triggered_at=T0 + timedelta(minutes=5))
    temp_db.save_drawdown_alert(first)
    temp_db.save_drawdown_alert(second)
    assert first.id is not None

    last = temp_db.get_last_drawdown_alert("XYZ")
    assert last.id == second.id
    assert last.kind == AlertKind.VARIATION
    assert last.notified is False

    temp_db.mark_alert_notified(second.id)
    assert temp_db.get_last_drawdown_alert("XYZ").notified is True


def test_recent_alerts_hide_recovery_markers(temp_db):
    temp_db.save_drawdown_alert(DrawdownAlert(symbol="XYZ", drawdown_pct=-16.0, threshold_pct=15.0,
                                              current_price=84.0, peak_price=100.0, triggered_at=T0))
    temp_db.save_drawdown_alert(DrawdownAlert(symbol="XYZ", drawdown_pct=-5.0, threshold_pct=15.0,
                                              current_price=95.0, peak_price=100.0,
                                              kind=AlertKind.RECOVERY,
                                              triggered_at=T0 + timedelta(hours=1)))
    assert len(temp_db.get_recent_alerts()) == 1
    assert len(temp_db.get_recent_alerts(include_markers=True)) == 2
    assert temp_db.get_recent_alerts(symbol="OTHER") == []


def test_level_state_insert_is_idempotent(temp_db):
    state = LevelState(symbol="XYZ", level=-10.0, peak_price=100.0, percentage=20.0, created_at=T0)
    assert temp_db.insert_level_state(state) is True
    assert state.id is not None
    again = LevelState(symbol="XYZ", level=-10.0, peak_price=100.0, percentage=20.0,
                       created_at=T0 + timedelta(hours=2))
    assert temp_db.insert_level_state(again) is False

    states = temp_db.get_level_states("XYZ", 100.0)
    assert len(states) == 1
    assert states[0].created_at == T0


def test_level_states_batch_is_all_or_nothing(temp_db):
    good = LevelState(symbol="XYZ", level=-5.0, peak_price=100.0, percentage=30.0, created_at=T0)
    bad = LevelState(symbol="XYZ", level=None, peak_price=100.0, percentage=20.0, created_at=T0)
    with pytest.raises(PersistenceFailure):
        temp_db.insert_level_states([good, bad])
    assert temp_db.get_level_states("XYZ", 100.0) == []

    inserted = temp_db.insert_level_states([
        good,
        LevelState(symbol="XYZ", level=-10.0, peak_price=100.0, percentage=20.0, created_at=T0),
    ])
    assert [s.level for s in inserted] == [-5.0, -10.0]
    assert len(temp_db.get_level_states("XYZ", 100.0)) == 2


def test_level_states_scoped_by_peak(temp_db):
    temp_db.insert_level_state(LevelState(symbol="XYZ", level=-10.0, peak_price=100.0,
                                          percentage=20.0, created_at=T0))
    temp_db.insert_level_state(LevelState(symbol="XYZ", level=-10.0, peak_price=120.0,
                                          percentage=20.0, created_at=T0))
    assert len(temp_db.get_level_states("XYZ", 100.0)) == 1
    assert len(temp_db.get_level_states("XYZ", 120.0)) == 1
    assert len(temp_db.get_all_level_states("XYZ")) == 2


def test_mark_level_used_upserts(temp_db):
    temp_db.mark_level_used("XYZ", -5.0, 100.0, 30.0, T0)
    temp_db.insert_level_state(LevelState(symbol="XYZ", level=-10.0, peak_price=100.0,
                                          percentage=20.0, created_at=T0))
    temp_db.mark_level_used("XYZ", -10.0, 100.0, 20.0, T0 + timedelta(hours=3))

    states = {s.level: s for s in temp_db.get_level_states("XYZ", 100.0)}
    assert states[-5.0].used is True
    assert states[-10.0].used is True
    assert states[-10.0].created_at == T0
    assert states[-10.0].used_at == T0 + timedelta(hours=3)


def test_device_tokens(temp_db):
    temp_db.add_device_token("ExponentPushToken[a]", "ios")
    temp_db.add_device_token("ExponentPushToken[b]")
    tokens = [r["token"] for r in temp_db.get_device_tokens()]
    assert tokens == ["ExponentPushToken[a]", "ExponentPushToken[b]"]
    assert temp_db.remove_device_token("ExponentPushToken[a]") is True
    assert temp_db.remove_device_token("ExponentPushToken[a]") is False
    assert len(temp_db.get_device_tokens(active_only=False)) == 1


def test_context_manager(tmp_path):
    from models.database import Database
    path = str(tmp_path / "nested" / "g.db")
    with Database(path) as db:
        assert db.conn is not None
    assert db.conn is None
