"""Tests for the command line entry point."""

import json

import pytest

from faultline.cli import EXIT_CONFIG_ERROR, EXIT_OK, main


@pytest.mark.parametrize("workload", ["rw-register", "cas-register", "list-append", "bank"])
def test_bundled_workloads(workload, tmp_path):
    code = main([workload, "--threads", "3", "--ops", "30", "--reports", "--report-dir", str(tmp_path), "--seed", "4"])
    assert code == EXIT_OK
    ops = json.loads((tmp_path / "history.json").read_text())
    assert sum(1 for op in ops if op["type"] == "invoke") == 30


def test_fiber_with_time_limit():
    code = main(["rw-register", "--thread-type", "fiber", "--ops", "100000", "--time-limit", "0.1"])
    assert code == EXIT_OK


def test_configuration_error_exit_code():
    assert main(["rw-register", "--threads", "0"]) == EXIT_CONFIG_ERROR
    assert main(["list-append", "--time-limit", "-1"]) == EXIT_CONFIG_ERROR


def test_unknown_workload_is_a_usage_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["queue"])
    assert excinfo.value.code == 2
