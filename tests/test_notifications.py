"""Tests for notification channels, the dispatcher and the device registry."""
import json
import pytest
from unittest.mock import MagicMock

from alerts.channels import ConsoleChannel, FileChannel, ExpoPushChannel, NotificationDispatcher
from monitor.errors import NotificationFailure
from notifications.devices import DeviceRegistry
from notifications.expo_push import ExpoPushClient, MAX_BATCH
from utils.http_client import APIError
from conftest import RecordingChannel

DATA = {"type": "drawdown", "asset": "XYZ"}


# ── Dispatcher ───────────────────────────────────────

def test_dispatch_to_all_channels():
    a, b = RecordingChannel(), RecordingChannel()
    dispatcher = NotificationDispatcher([a, b])
    assert dispatcher.notify(["t1"], "Title", "Body", DATA) is True
    assert len(a.sent) == 1
    assert len(b.sent) == 1
    assert a.sent[0]["recipients"] == ["t1"]


def test_dispatch_respects_types():
    levels_only = RecordingChannel(types=["levels_available"])
    everything = RecordingChannel()
    dispatcher = NotificationDispatcher([levels_only, everything])
    dispatcher.notify([], "Title", "Body", DATA)
    assert levels_only.sent == []
    assert len(everything.sent) == 1


def test_dispatch_reports_failed_channel():
    dispatcher = NotificationDispatcher([RecordingChannel(), RecordingChannel(ok=False)])
    assert dispatcher.notify([], "T", "B", DATA) is False


def test_dispatch_contains_raising_channel():
    broken = MagicMock()
    broken.name = "broken"
    broken.accepts.return_value = True
    broken.send.side_effect = RuntimeError("socket closed")
    good = RecordingChannel()
    dispatcher = NotificationDispatcher([broken, good])
    assert dispatcher.notify([], "T", "B", DATA) is False
    assert len(good.sent) == 1


def test_notify_or_raise():
    dispatcher = NotificationDispatcher([RecordingChannel(ok=False)])
    with pytest.raises(NotificationFailure) as exc:
        dispatcher.notify_or_raise([], "T", "B", DATA, symbol="XYZ")
    assert exc.value.symbol == "XYZ"


# ── Channels ─────────────────────────────────────────

def test_console_channel():
    console = MagicMock()
    channel = ConsoleChannel(console=console)
    assert channel.send([], "Drawdown Alert", "XYZ: -16.00%", DATA) is True
    assert console.print.call_count == 2


def test_file_channel(tmp_path):
    path = tmp_path / "notifications.jsonl"
    channel = FileChannel(log_path=str(path))
    assert channel.send(["t1", "t2"], "Title", "Body", DATA)
    assert channel.send([], "Second", "Body", DATA)
    lines = path.read_text().strip().split("\n")
    assert len(lines) == 2
    entry = json.loads(lines[0])
    assert entry["title"] == "Title"
    assert entry["recipients"] == 2
    assert entry["data"]["asset"] == "XYZ"


def test_file_channel_unwritable(tmp_path):
    channel = FileChannel(log_path=str(tmp_path / "missing" / "n.jsonl"))
    assert channel.send([], "T", "B", DATA) is False


def test_expo_channel_no_recipients():
    client = MagicMock()
    assert ExpoPushChannel(client).send([], "T", "B", DATA) is True
    client.send.assert_not_called()


def test_expo_channel_tickets():
    client = MagicMock()
    client.send.return_value = [{"status": "ok"}, {"status": "error", "message": "DeviceNotRegistered"}]
    assert ExpoPushChannel(client).send(["a", "b"], "T", "B", DATA) is True
    client.send.return_value = [{"status": "error"}]
    assert ExpoPushChannel(client).send(["a"], "T", "B", DATA) is False


def test_expo_channel_transport_error():
    client = MagicMock()
    client.send.side_effect = APIError("HTTP 503", status_code=503)
    assert ExpoPushChannel(client).send(["a"], "T", "B", DATA) is False


# ── Expo client ──────────────────────────────────────

def test_expo_client_payload():
    http = MagicMock()
    http.session.headers = {}
    http.post.return_value = {"data": [{"status": "ok", "id": "1"}]}
    client = ExpoPushClient(access_token="secret", http=http)
    tickets = client.send(["ExponentPushToken[a]"], "Title", "Body", {"type": "drawdown"})

    assert tickets == [{"status": "ok", "id": "1"}]
    assert http.session.headers["Authorization"] == "Bearer secret"
    batch = http.post.call_args.kwargs["json_body"]
    assert batch == [{"to": "ExponentPushToken[a]", "sound": "default", "title": "Title",
                      "body": "Body", "data": {"type": "drawdown"}}]


def test_expo_client_batches():
    http = MagicMock()
    http.session.headers = {}
    http.post.side_effect = lambda json_body: {"data": [{"status": "ok"}] * len(json_body)}
    client = ExpoPushClient(http=http)
    tokens = [f"ExponentPushToken[{i}]" for i in range(MAX_BATCH + 5)]
    tickets = client.send(tokens, "T", "B")
    assert http.post.call_count == 2
    assert len(tickets) == MAX_BATCH + 5


# ── Devices ──────────────────────────────────────────

def test_device_registry(temp_db):
    devices = DeviceRegistry(temp_db)
    devices.register("  ExponentPushToken[a]  ", "ios")
    devices.register("ExponentPushToken[b]", "android")
    assert devices.recipients() == ["ExponentPushToken[a]", "ExponentPushToken[b]"]
    assert devices.unregister("ExponentPushToken[a]") is True
    assert devices.recipients() == ["ExponentPushToken[b]"]
    assert devices.list()[0]["platform"] == "android"


def test_device_registry_rejects_empty(temp_db):
    with pytest.raises(ValueError):
        DeviceRegistry(temp_db).register("   ")
