"""Unit tests for the write gate."""

import threading
import time

from sqlite_logstore.components.gate import WriteGate


def test_gate_context_manager():
    """Test the gate is held inside the with block only."""
    gate = WriteGate()
    with gate:
        assert gate.locked()
    assert not gate.locked()


def test_gate_released_on_error():
    """Test an exception inside the block still releases the gate."""
    gate = WriteGate()
    try:
        with gate:
            raise RuntimeError("fail")
    except RuntimeError:
        pass
    assert not gate.locked()


def test_gate_acquire_timeout():
    """Test acquire gives up after the timeout while another thread holds it."""
    gate = WriteGate()
    gate.acquire()
    try:
        result = []
        t = threading.Thread(target=lambda: result.append(gate.acquire(timeout=0.05)))
        t.start()
        t.join()
        assert result == [False]
    finally:
        gate.release()


def test_gate_serializes_work():
    """Test two threads never hold the gate at the same time."""
    gate = WriteGate()
    active = []
    overlaps = []

    def work():
        for _ in range(20):
            with gate:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.001)
                active.pop()

    threads = [threading.Thread(target=work) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
