"""Tests for the worker relay.

The test plays both the coordinator and the sink; the search tool is a real
subprocess (see synthetic_data.TOOL_SCRIPTS).
"""

import sys
import threading

import pytest

from mpiblast import protocol
from mpiblast.coordinator import fragments
from mpiblast.exceptions import ProtocolError, SubprocessLaunchError
from mpiblast.transport import LocalHub
from mpiblast.worker import WorkerRelay
from tests.synthetic_data import make_queries, make_record

WORKER = protocol.FIRST_WORKER


def _start_worker(hub, command, **kwargs):
    relay = WorkerRelay(hub.endpoint(WORKER), command, **kwargs)
    result = {}

    def target():
        try:
            result["stats"] = relay.run()
        except Exception as exc:
            result["error"] = exc

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread, result


def _send_block(coordinator, data, fragment_size=20000):
    coordinator.send(WORKER, protocol.BEGIN)
    for fragment in fragments(data, fragment_size):
        coordinator.send(WORKER, protocol.DATA, fragment)
    coordinator.send(WORKER, protocol.END)


def _collect_session(sink):
    """Receive one BEGIN/DATA*/END session from the worker; return its bytes."""
    assert sink.recv(WORKER).tag == protocol.BEGIN
    chunks = []
    while True:
        message = sink.recv(WORKER)
        if message.tag == protocol.END:
            return b"".join(chunks)
        assert message.tag == protocol.DATA
        chunks.append(message.payload)


def test_relay_round_trip(tool):
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    sink = hub.endpoint(protocol.SINK)
    thread, result = _start_worker(hub, tool("headers"))

    assert coordinator.recv(WORKER).tag == protocol.READY
    _send_block(coordinator, make_queries([200, 300], prefix="p"))

    assert _collect_session(sink) == b"hit p0 synthetic query\nhit p1 synthetic query\n"
    assert coordinator.recv(WORKER).tag == protocol.READY

    coordinator.send(WORKER, protocol.DONE)
    thread.join(timeout=30)

    assert not thread.is_alive()
    stats = result["stats"]
    assert stats.blocks == 1
    assert stats.bytes_in == 500
    assert stats.failed_exits == 0


def test_block_larger_than_pipe_buffers_does_not_deadlock(tool):
    # echo writes while it reads; without a concurrent feeder both pipes fill up
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    sink = hub.endpoint(protocol.SINK)
    thread, result = _start_worker(hub, tool("echo"), read_size=4096)

    block = make_record("huge", 1_000_000)
    collector = threading.Thread(target=lambda: result.setdefault("output", _collect_session(sink)), daemon=True)
    collector.start()

    assert coordinator.recv(WORKER).tag == protocol.READY
    _send_block(coordinator, block)
    coordinator.send(WORKER, protocol.DONE)

    collector.join(timeout=60)
    thread.join(timeout=60)

    assert not thread.is_alive()
    assert result["output"] == block
    assert result["stats"].bytes_out == len(block)


def test_each_block_gets_a_fresh_process(tool):
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    sink = hub.endpoint(protocol.SINK)
    thread, result = _start_worker(hub, tool("count"))

    outputs = []
    for sizes in ([100, 100], [150]):
        assert coordinator.recv(WORKER).tag == protocol.READY
        _send_block(coordinator, make_queries(sizes))
        outputs.append(_collect_session(sink))

    assert coordinator.recv(WORKER).tag == protocol.READY
    coordinator.send(WORKER, protocol.DONE)
    thread.join(timeout=30)

    assert outputs == [b"queries=2 bytes=200\n", b"queries=1 bytes=150\n"]
    assert result["stats"].blocks == 2


def test_tool_that_stops_reading_keeps_protocol_in_step(tool):
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    sink = hub.endpoint(protocol.SINK)
    thread, result = _start_worker(hub, tool("early_exit"))

    assert coordinator.recv(WORKER).tag == protocol.READY
    _send_block(coordinator, make_record("ignored", 1_000_000))

    assert _collect_session(sink) == b"bye\n"
    assert coordinator.recv(WORKER).tag == protocol.READY
    assert hub.pending(WORKER) == 0

    coordinator.send(WORKER, protocol.DONE)
    thread.join(timeout=30)
    assert not thread.is_alive()
    assert "error" not in result


def test_nonzero_exit_is_counted_not_fatal(tool):
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    sink = hub.endpoint(protocol.SINK)
    thread, result = _start_worker(hub, tool("fail"))

    assert coordinator.recv(WORKER).tag == protocol.READY
    _send_block(coordinator, make_queries([120]))
    assert _collect_session(sink) == b"partial\n"

    assert coordinator.recv(WORKER).tag == protocol.READY
    coordinator.send(WORKER, protocol.DONE)
    thread.join(timeout=30)

    assert result["stats"].failed_exits == 1


def test_missing_tool_is_a_launch_error(tmp_path):
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    thread, result = _start_worker(hub, [str(tmp_path / "no-such-tool")])

    assert coordinator.recv(WORKER).tag == protocol.READY
    _send_block(coordinator, make_queries([100]))
    thread.join(timeout=30)

    error = result["error"]
    assert isinstance(error, SubprocessLaunchError)
    assert error.error_code == "SUB001"


def test_unexpected_reply_is_a_protocol_error():
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    thread, result = _start_worker(hub, [sys.executable, "-c", "pass"])

    assert coordinator.recv(WORKER).tag == protocol.READY
    coordinator.send(WORKER, protocol.DATA, b"early")
    thread.join(timeout=30)

    assert isinstance(result["error"], ProtocolError)


def test_done_before_any_block_finishes_immediately():
    hub = LocalHub(3)
    coordinator = hub.endpoint(protocol.COORDINATOR)
    thread, result = _start_worker(hub, [sys.executable, "-c", "pass"])

    assert coordinator.recv(WORKER).tag == protocol.READY
    coordinator.send(WORKER, protocol.DONE)
    thread.join(timeout=30)

    assert result["stats"].blocks == 0
    assert hub.pending(protocol.SINK) == 0


def test_empty_command_is_rejected(hub3):
    with pytest.raises(ValueError):
        WorkerRelay(hub3.endpoint(WORKER), [])
