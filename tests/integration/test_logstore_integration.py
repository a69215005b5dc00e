"""Integration tests for the complete log store.

Covers real SQLITE_FULL rollover, retention running against live writes,
and the logging handler wired to a buffered store.
"""

import logging
import re
import shutil
import sqlite3
import tempfile
import threading
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from sqlite_logstore import (
    BufferedLogStore,
    LogEvent,
    SQLiteLogHandler,
    SQLiteLogStore,
    StoreConfig,
)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


def _query(path, sql):
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


def _count(path, table="Logs"):
    return _query(path, f"SELECT COUNT(*) FROM {table}")[0][0]


def _messages(path, table="Logs"):
    return [row[0] for row in _query(path, f"SELECT Message FROM {table} ORDER BY Id")]


def _large_batch(prefix, size=5, payload_size=16 * 1024):
    payload = "x" * payload_size
    return [LogEvent(f"{prefix}-{i} {payload}") for i in range(size)]


def test_rollover_on_full_database(temp_dir):
    """Test a full database is backed up, emptied and the batch retried."""
    db_path = temp_dir / "logs.db"
    config = StoreConfig(database_path=str(db_path), max_database_size=1, roll_over=True)

    with SQLiteLogStore(config) as store:
        backups = []
        rows_before = 0
        failing_batch = None
        for n in range(200):
            rows_before = _count(db_path)
            failing_batch = _large_batch(f"batch{n}")
            assert store.write_batch(failing_batch) is True
            backups = list(temp_dir.glob("logs-*.db"))
            if backups:
                break

    assert len(backups) == 1
    assert re.match(r"^logs-\d{8}_\d{6}\.\d{2}\.db$", backups[0].name)
    assert rows_before > 0
    assert _count(backups[0]) == rows_before
    assert _messages(db_path) == [event.message_template for event in failing_batch]


def test_full_database_without_rollover_discards(temp_dir):
    """Test batches are discarded, and reported handled, once the file is full."""
    db_path = temp_dir / "logs.db"
    config = StoreConfig(database_path=str(db_path), max_database_size=1, roll_over=False)

    with SQLiteLogStore(config) as store:
        counts = []
        for n in range(60):
            assert store.write_batch(_large_batch(f"batch{n}")) is True
            counts.append(_count(db_path))

    assert counts[-1] == counts[-2]
    assert counts[-1] < 60 * 5
    assert list(temp_dir.glob("logs-*.db")) == []


def test_background_retention_sweep(temp_dir):
    """Test the sweeper deletes expired rows as soon as the store starts."""
    db_path = temp_dir / "logs.db"
    now = datetime.now().astimezone()

    with SQLiteLogStore(StoreConfig(database_path=str(db_path))) as seed:
        seed.write_batch(
            [
                LogEvent("expired", timestamp=now - timedelta(days=3)),
                LogEvent("kept", timestamp=now),
            ]
        )

    config = StoreConfig(database_path=str(db_path), retention_period=timedelta(days=1))
    with SQLiteLogStore(config) as store:
        deadline = time.monotonic() + 5.0
        while store.sweeper.sweep_count == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert store.sweeper.sweep_count >= 1

    assert _messages(db_path) == ["kept"]


def test_concurrent_writes_and_sweeps(temp_dir):
    """Test writers and sweepers interleave without losing or splitting batches."""
    db_path = temp_dir / "logs.db"
    now = datetime.now().astimezone()
    config = StoreConfig(database_path=str(db_path), retention_period=timedelta(hours=1))

    writers = 4
    batches_per_writer = 10
    batch_size = 20

    with SQLiteLogStore(config) as store:
        store.write_batch(
            [LogEvent(f"old-{i}", timestamp=now - timedelta(days=1)) for i in range(50)]
        )

        results = []
        errors = []

        def write_worker(worker_id):
            try:
                for b in range(batches_per_writer):
                    events = [LogEvent(f"w{worker_id}-b{b}-{i:02d}") for i in range(batch_size)]
                    results.append(store.write_batch(events))
            except Exception as e:
                errors.append(e)

        def sweep_worker():
            try:
                for _ in range(5):
                    store.apply_retention_policy()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=write_worker, args=(w,)) for w in range(writers)]
        threads += [threading.Thread(target=sweep_worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        store.apply_retention_policy()

    assert errors == []
    assert all(results)
    assert len(results) == writers * batches_per_writer

    rows = _query(db_path, "SELECT Id, Message FROM Logs ORDER BY Id")

    assert len(rows) == writers * batches_per_writer * batch_size
    assert not any(message.startswith("old-") for _, message in rows)

    batches = defaultdict(list)
    for row_id, message in rows:
        batch_key, _, index = message.rpartition("-")
        batches[batch_key].append((row_id, int(index)))
    for entries in batches.values():
        ids = [row_id for row_id, _ in entries]
        assert ids == list(range(ids[0], ids[0] + batch_size))
        assert [index for _, index in entries] == list(range(batch_size))


def test_logging_handler_end_to_end(temp_dir):
    """Test the logging handler drives a buffered store to disk."""
    db_path = temp_dir / "app.db"
    config = StoreConfig(
        database_path=str(db_path), table_name="AppLogs", batch_size=10, flush_period=0.05
    )
    app_logger = logging.getLogger(f"e2e.{uuid.uuid4().hex}")
    app_logger.setLevel(logging.INFO)
    app_logger.propagate = False

    handler = SQLiteLogHandler(BufferedLogStore(config))
    app_logger.addHandler(handler)
    try:
        for i in range(35):
            app_logger.info("request %d served", i, extra={"ClientAgent": "pytest"})
        app_logger.warning("slow request")
        handler.flush()

        messages = _messages(db_path, "AppLogs")
        assert messages == [f"request {i} served" for i in range(35)] + ["slow request"]
        agents = {row[0] for row in _query(db_path, "SELECT ClientAgent FROM AppLogs")}
        assert agents == {"pytest", ""}
    finally:
        app_logger.removeHandler(handler)
        handler.close()
