"""Whole jobs on the in-process transport."""

import pytest

from mpiblast import protocol
from mpiblast.config import RelayConfig
from mpiblast.coordinator import DistributionStats
from mpiblast.exceptions import ConfigValidationError, StorageError, SubprocessLaunchError, TransportAborted
from mpiblast.runner import SearchJob, run_local, run_role
from mpiblast.sink import SinkStats
from mpiblast.transport import LocalHub
from mpiblast.worker import RelayStats
from tests.synthetic_data import make_queries, split_records


def _job(query_path, output_path, command):
    return SearchJob(query_path=query_path, output_path=output_path, command=tuple(command))


def _session_lines(output: bytes):
    return sorted(output.splitlines())


def test_every_query_is_searched_exactly_once(tmp_path, tool, query_file):
    sizes = [200 + 37 * i for i in range(40)]
    data = make_queries(sizes)
    output = tmp_path / "hits.txt"
    job = _job(query_file(data), output, tool("headers"))
    config = RelayConfig(block_size=1500, transport="local", local_workers=3)

    outcomes = run_local(job, config)

    assert [o.rank for o in outcomes] == [0, 1, 2, 3, 4]
    assert all(o.status == 0 for o in outcomes), [o.error for o in outcomes]
    expected = [f"hit q{i} synthetic query".encode() for i in range(len(sizes))]
    assert _session_lines(output.read_bytes()) == sorted(expected)

    coordinator_stats = outcomes[protocol.COORDINATOR].result
    assert isinstance(coordinator_stats, DistributionStats)
    assert coordinator_stats.records == len(sizes)
    assert coordinator_stats.workers_finished == 3
    assert isinstance(outcomes[protocol.SINK].result, SinkStats)
    assert outcomes[protocol.SINK].result.sessions == coordinator_stats.blocks
    worker_stats = [o.result for o in outcomes[protocol.FIRST_WORKER:]]
    assert all(isinstance(s, RelayStats) for s in worker_stats)
    assert sum(s.blocks for s in worker_stats) == coordinator_stats.blocks


def test_echo_conserves_bytes(tmp_path, tool, query_file):
    data = make_queries([900] * 30 + [50000] + [400] * 10)
    output = tmp_path / "echo.txt"
    job = _job(query_file(data), output, tool("echo"))
    config = RelayConfig(block_size=4000, fragment_size=1000, read_size=777, transport="local")

    outcomes = run_local(job, config, workers=4)

    assert all(o.status == 0 for o in outcomes)
    result = output.read_bytes()
    assert len(result) == len(data)
    # sessions are whole blocks, so every record survives intact
    assert sorted(split_records(result)) == sorted(split_records(data))


def test_sessions_are_not_interleaved(tmp_path, tool, query_file):
    data = make_queries([300] * 24)
    output = tmp_path / "counts.txt"
    job = _job(query_file(data), output, tool("count"))
    config = RelayConfig(block_size=900, transport="local")

    outcomes = run_local(job, config, workers=3)

    assert all(o.status == 0 for o in outcomes)
    lines = output.read_bytes().splitlines()
    assert len(lines) == outcomes[protocol.COORDINATOR].result.blocks == 8
    assert all(line == b"queries=3 bytes=900" for line in lines)


def test_more_workers_than_blocks(tmp_path, tool, query_file):
    output = tmp_path / "hits.txt"
    job = _job(query_file(make_queries([100])), output, tool("headers"))

    outcomes = run_local(job, RelayConfig(transport="local"), workers=5)

    assert all(o.status == 0 for o in outcomes)
    assert output.read_bytes() == b"hit q0 synthetic query\n"
    assert sum(o.result.blocks for o in outcomes[protocol.FIRST_WORKER:]) == 1


def test_empty_query_file_gives_empty_output(tmp_path, tool, query_file):
    output = tmp_path / "hits.txt"
    job = _job(query_file(b""), output, tool("headers"))

    outcomes = run_local(job, RelayConfig(transport="local"))

    assert all(o.status == 0 for o in outcomes)
    assert output.exists()
    assert output.read_bytes() == b""


def test_missing_tool_aborts_every_role(tmp_path, query_file):
    output = tmp_path / "hits.txt"
    job = _job(query_file(make_queries([100] * 5)), output, [str(tmp_path / "no-such-tool")])

    # one record per block, so no worker can be finished off with DONE
    outcomes = run_local(job, RelayConfig(block_size=150, transport="local"), workers=2)

    assert all(o.status == -1 for o in outcomes)
    errors = [o.error for o in outcomes]
    assert any(isinstance(e, SubprocessLaunchError) for e in errors)
    assert all(isinstance(e, (SubprocessLaunchError, TransportAborted)) for e in errors)


def test_missing_query_file_aborts_every_role(tmp_path, tool):
    job = _job(tmp_path / "absent.fa", tmp_path / "hits.txt", tool("headers"))

    outcomes = run_local(job, RelayConfig(transport="local"), workers=2)

    assert isinstance(outcomes[protocol.COORDINATOR].error, StorageError)
    assert all(o.status == -1 for o in outcomes)


def test_world_needs_coordinator_sink_and_a_worker(tmp_path):
    hub = LocalHub(2)
    job = _job(tmp_path / "q.fa", tmp_path / "out.txt", ["tool"])

    with pytest.raises(ConfigValidationError) as exc_info:
        run_role(hub.endpoint(0), job, RelayConfig())
    assert exc_info.value.details["config_key"] == "size"
