"""mpi-blast test suite.

Test organization:
- test_chunker.py: line reader and block assembly
- test_protocol.py: tags, role ids and helpers
- test_local_transport.py: in-process mailboxes
- test_coordinator.py / test_sink.py / test_worker.py: one role each, peers scripted by the test
- test_runner.py: whole jobs on the local transport
- test_cli.py: command line extraction and exit codes
- test_config.py / test_error_codes.py / test_logging_config.py: ambient stack

Query generators and stand-in search tools live in synthetic_data.py.
"""
