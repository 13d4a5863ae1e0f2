"""Tests for the error taxonomy with error codes."""

from mpiblast.exceptions import (
    BlastRelayError,
    ConfigValidationError,
    MalformedInputError,
    ProtocolError,
    StorageError,
    SubprocessLaunchError,
    TransportAborted,
    TransportError,
    UsageError,
)


def test_base_error_code():
    """Test that base exception has error code."""
    err = BlastRelayError("Test error")
    assert err.error_code == "ERR000"
    assert "[ERR000]" in str(err)


def test_config_validation_error_code():
    err = ConfigValidationError("Invalid config", config_path="/path/to/relay.yaml", key="block_size")
    assert err.error_code == "CFG001"
    assert "[CFG001]" in str(err)
    assert "config_path=/path/to/relay.yaml" in str(err)
    assert "config_key=block_size" in str(err)


def test_usage_error_code():
    err = UsageError("missing required argument -out", argument="-out")
    assert err.error_code == "USE001"
    assert err.details == {"argument": "-out"}


def test_malformed_input_error_code():
    err = MalformedInputError("incomplete last line", source="q.fa", offset=0)
    assert err.error_code == "INP001"
    assert err.details == {"source": "q.fa", "offset": 0}


def test_storage_error_code():
    """Test StorageError keeps the original exception."""
    original = PermissionError("denied")
    err = StorageError("Cannot open output file", operation="open", file_path="/out", original_error=original)
    assert err.error_code == "STG001"
    assert err.original_error is original
    assert err.details["error_type"] == "PermissionError"


def test_transport_error_code():
    err = TransportError("send failed", operation="send", peer=1, tag=2)
    assert err.error_code == "TRN001"
    assert "peer=1" in str(err)


def test_transport_aborted_is_a_transport_error():
    err = TransportAborted("Job aborted", code=4)
    assert isinstance(err, TransportError)
    assert err.error_code == "TRN002"
    assert err.code == 4
    assert err.details["abort_code"] == 4


def test_protocol_error_code():
    err = ProtocolError("unexpected tag", role="sink", peer=2, tag=2)
    assert err.error_code == "PRT001"
    assert "[PRT001]" in str(err)


def test_subprocess_launch_error_code():
    err = SubprocessLaunchError("Failure in invoking search tool", command="blastp")
    assert err.error_code == "SUB001"
    assert "command=blastp" in str(err)


def test_error_code_override():
    """Test that error code can be overridden."""
    err = BlastRelayError("Custom error", error_code="CUSTOM001")
    assert err.error_code == "CUSTOM001"
    assert "[CUSTOM001]" in str(err)


def test_every_error_is_a_relay_error():
    for err in (
        ConfigValidationError("x"),
        UsageError("x"),
        MalformedInputError("x"),
        StorageError("x"),
        TransportError("x"),
        ProtocolError("x"),
        SubprocessLaunchError("x"),
    ):
        assert isinstance(err, BlastRelayError)
        assert str(err) == f"[{err.error_code}] x"
