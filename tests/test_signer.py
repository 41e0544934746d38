"""Tests for the external signer invoker and its fallback policy."""

import threading
import time
from pathlib import Path

import pytest

from signdesk.services.command_template import SigningCommand
from signdesk.services.signer import ExternalSigner, SigningOutcome
from tests.factories import FAIL_CODE, SILENT_CODE, SLEEP_CODE, SPAWN_CODE, SIGNING_TEMPLATE, python_command

PREPARED = b"%PDF-1.4 prepared body"


@pytest.fixture
def paths(tmp_path: Path) -> tuple[Path, Path]:
    prepared = tmp_path / "doc.prepared.pdf"
    prepared.write_bytes(PREPARED)
    return prepared, tmp_path / "doc.signed.pdf"


def command(template: str, prepared: Path, output: Path) -> SigningCommand:
    return SigningCommand.from_template(template, {"input": str(prepared), "output": str(output)})


@pytest.mark.parametrize("template", ["copy", " NOOP "])
def test_bypass_copies_prepared_file_exactly(paths, template):
    prepared, output = paths
    result = ExternalSigner().invoke(command(template, prepared, output), prepared, output)

    assert result.outcome is SigningOutcome.degraded
    assert result.returncode is None
    assert output.read_bytes() == PREPARED


def test_bypass_copy_failure_is_reported_not_raised(tmp_path):
    missing = tmp_path / "gone.prepared.pdf"
    output = tmp_path / "gone.signed.pdf"
    result = ExternalSigner().invoke(command("copy", missing, output), missing, output)

    assert result.outcome is SigningOutcome.failed
    assert result.output_path is None
    assert "could not copy" in result.diagnostics


def test_successful_signer(paths):
    prepared, output = paths
    result = ExternalSigner().invoke(command(SIGNING_TEMPLATE, prepared, output), prepared, output)

    assert result.outcome is SigningOutcome.signed
    assert result.ok
    assert result.returncode == 0
    assert result.output_path == output
    assert output.read_bytes() == PREPARED + b"%SIGNED"


def test_failure_falls_back_to_prepared_copy(paths):
    prepared, output = paths
    template = python_command(FAIL_CODE)
    result = ExternalSigner().invoke(command(template, prepared, output), prepared, output, fallback=True)

    assert result.outcome is SigningOutcome.degraded
    assert result.returncode == 3
    assert "boom" in result.diagnostics
    assert output.read_bytes() == PREPARED


def test_failure_without_fallback_produces_nothing(paths):
    prepared, output = paths
    template = python_command(FAIL_CODE)
    result = ExternalSigner().invoke(command(template, prepared, output), prepared, output, fallback=False)

    assert result.outcome is SigningOutcome.failed
    assert not result.ok
    assert result.output_path is None
    assert not output.exists()


def test_spawn_error_counts_as_failure(paths):
    prepared, output = paths
    template = '/nonexistent/signer-tool "{input}" "{output}"'

    degraded = ExternalSigner().invoke(command(template, prepared, output), prepared, output)
    assert degraded.outcome is SigningOutcome.degraded
    assert degraded.returncode is None
    assert "could not start signer" in degraded.diagnostics

    output.unlink()
    failed = ExternalSigner().invoke(command(template, prepared, output), prepared, output, fallback=False)
    assert failed.outcome is SigningOutcome.failed


def test_zero_exit_without_output_is_a_failure(paths):
    prepared, output = paths
    result = ExternalSigner().invoke(
        command(python_command(SILENT_CODE), prepared, output), prepared, output, fallback=False
    )
    assert result.outcome is SigningOutcome.failed
    assert "wrote no output" in result.diagnostics


def test_stale_output_is_not_mistaken_for_a_signature(paths):
    prepared, output = paths
    output.write_bytes(b"left over from a previous run")
    result = ExternalSigner().invoke(
        command(python_command(SILENT_CODE), prepared, output), prepared, output, fallback=False
    )
    assert result.outcome is SigningOutcome.failed
    assert not output.exists()


def test_hung_signer_times_out(paths):
    prepared, output = paths
    signer = ExternalSigner(timeout_seconds=0.5, poll_interval=0.05)
    result = signer.invoke(command(python_command(SLEEP_CODE), prepared, output), prepared, output, fallback=False)

    assert result.outcome is SigningOutcome.failed
    assert "timed out" in result.diagnostics


def test_hung_signer_timeout_falls_back_in_general_flow(paths):
    prepared, output = paths
    signer = ExternalSigner(timeout_seconds=0.5, poll_interval=0.05)
    result = signer.invoke(command(python_command(SLEEP_CODE), prepared, output), prepared, output)

    assert result.outcome is SigningOutcome.degraded
    assert output.read_bytes() == PREPARED


def test_cancellation_stops_the_signer(paths):
    prepared, output = paths
    cancel = threading.Event()
    cancel.set()
    signer = ExternalSigner(timeout_seconds=None, poll_interval=0.05)
    result = signer.invoke(
        command(python_command(SLEEP_CODE), prepared, output), prepared, output, fallback=False, cancel=cancel
    )

    assert result.outcome is SigningOutcome.failed
    assert "cancelled" in result.diagnostics


def test_empty_command_is_a_failure(paths):
    prepared, output = paths
    broken = SigningCommand.from_template('signer "{input}', {"input": str(prepared)})
    result = ExternalSigner().invoke(broken, prepared, output, fallback=False)
    assert result.outcome is SigningOutcome.failed
    assert "empty" in result.diagnostics


def test_timeout_kills_processes_started_by_the_signer(paths):
    prepared, output = paths
    signer = ExternalSigner(timeout_seconds=0.5, poll_interval=0.05)

    started = time.monotonic()
    result = signer.invoke(command(python_command(SPAWN_CODE), prepared, output), prepared, output, fallback=False)

    assert time.monotonic() - started < 5
    assert result.outcome is SigningOutcome.failed
    assert "timed out" in result.diagnostics


def test_diagnostics_do_not_echo_the_command_line(paths):
    prepared, output = paths
    template = python_command(FAIL_CODE, '"{input}"', '"{output}"', "{pfxPassword}")
    failing = SigningCommand.from_template(
        template, {"input": str(prepared), "output": str(output), "pfxPassword": "s3cret"}
    )
    result = ExternalSigner().invoke(failing, prepared, output, fallback=False)

    assert "s3cret" in failing.resolved
    assert "s3cret" not in result.diagnostics
