import threading
from unittest.mock import MagicMock

import pytest
import requests

from errors import ErrorKind, StoreError
from realtime_store import COMPASS_KEY, LOCATION_KEY, MARKERS_KEY, KeyedWriter, RealtimeStore


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def store(session):
    return RealtimeStore("https://survey-db.example.com/", "secret", session=session, timeout=4)


def test_put_overwrites_key(store, session):
    store.put("markers", {"a": 1})
    session.put.assert_called_once_with(
        "https://survey-db.example.com/markers.json",
        json={"a": 1},
        params={"auth": "secret"},
        timeout=4,
    )


def test_put_without_token_sends_no_auth(session):
    store = RealtimeStore("https://survey-db.example.com", session=session)
    store.put("k", {})
    assert session.put.call_args.kwargs["params"] is None


def test_unconfigured_store_refuses_writes(session):
    store = RealtimeStore(None, session=session)
    assert not store.configured
    with pytest.raises(StoreError):
        store.upload_location(1.0, 2.0)
    session.put.assert_not_called()


def test_transport_failure_raises_network_error(store, session):
    session.put.side_effect = requests.ConnectionError("offline")
    with pytest.raises(StoreError) as exc:
        store.upload_compass(1, 2, 3)
    assert exc.value.kind == ErrorKind.NETWORK


def test_http_failure_raises_network_error(store, session):
    session.put.return_value.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
    with pytest.raises(StoreError) as exc:
        store.upload_markers([(1.0, 2.0)])
    assert exc.value.kind == ErrorKind.NETWORK


def test_upload_markers_payload(store, session):
    payload = store.upload_markers([(10.0, -61.0), (10.1, -61.1)], zone="low")
    assert session.put.call_args.args[0].endswith(f"/{MARKERS_KEY}.json")
    assert payload["markers"] == [
        {"latitude": 10.0, "longitude": -61.0},
        {"latitude": 10.1, "longitude": -61.1},
    ]
    assert payload["zone"] == "low"
    assert payload["timestamp"].endswith("+00:00")


def test_upload_markers_without_zone(store):
    payload = store.upload_markers([])
    assert "zone" not in payload
    assert payload["markers"] == []


def test_upload_location_and_compass_keys(store, session):
    store.upload_location(1.5, 2.5)
    assert session.put.call_args.args[0].endswith(f"/{LOCATION_KEY}.json")
    assert session.put.call_args.kwargs["json"]["latitude"] == 1.5

    store.upload_compass(0.1, 0.2, 0.3)
    assert session.put.call_args.args[0].endswith(f"/{COMPASS_KEY}.json")
    body = session.put.call_args.kwargs["json"]
    assert (body["x"], body["y"], body["z"]) == (0.1, 0.2, 0.3)


def test_keyed_writer_keeps_submission_order():
    writes = []
    writer = KeyedWriter("test")
    for i in range(20):
        writer.submit(writes.append, i)
    writer.join()
    writer.close(timeout=1)
    assert writes == sorted(writes)
    assert writes[-1] == 19
    assert len(writes) + writer.superseded == 20


def test_keyed_writer_coalesces_while_a_write_is_blocked():
    started = threading.Event()
    release = threading.Event()
    writes = []

    def slow(value):
        started.set()
        release.wait(2)
        writes.append(value)

    writer = KeyedWriter("compass")
    writer.submit(slow, 0)
    assert started.wait(2)
    for i in range(1, 50):
        writer.submit(slow, i)
    release.set()
    assert writer.join(timeout=2)
    writer.close(timeout=1)
    assert writes == [0, 49]
    assert writer.superseded == 48


def test_keyed_writer_close_sends_pending_write():
    writes = []
    writer = KeyedWriter("test")
    writer.submit(writes.append, "last")
    writer.close(timeout=1)
    assert writes == ["last"]
    writer.submit(writes.append, "late")
    assert writes == ["last"]


def test_keyed_writer_drops_failed_write_and_continues():
    writes = []

    def flaky(value):
        if value == 1:
            raise StoreError("boom", ErrorKind.NETWORK)
        writes.append(value)

    writer = KeyedWriter("test")
    for i in range(3):
        writer.submit(flaky, i)
        writer.join()
    writer.close(timeout=1)
    assert writes == [0, 2]
