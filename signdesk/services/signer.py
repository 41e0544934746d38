from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from signdesk.core.errors import SigningError
from signdesk.services.command_template import SigningCommand

logger = logging.getLogger(__name__)

DIAGNOSTICS_LIMIT = 4000
# seconds to drain the pipes once the process group has been killed
KILL_GRACE_SECONDS = 2.0


class SigningOutcome(str, Enum):
    signed = "signed"
    degraded = "degraded"
    failed = "failed"


@dataclass
class SigningResult:
    """What happened to one signing attempt.

    ``degraded`` means the output is a plain copy of the prepared file: either
    signing is disabled by configuration or the external tool failed and the
    flow allows a fallback.
    """

    outcome: SigningOutcome
    output_path: Optional[Path]
    diagnostics: str = ""
    returncode: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not SigningOutcome.failed


class ExternalSigner:
    """Run an operator-configured signing CLI with a bounded wait."""

    def __init__(self, timeout_seconds: float | None = 120.0, poll_interval: float = 0.1) -> None:
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval

    def invoke(
        self,
        command: SigningCommand,
        prepared_path: Path,
        output_path: Path,
        *,
        fallback: bool = True,
        cancel: threading.Event | None = None,
    ) -> SigningResult:
        if command.is_bypass:
            try:
                self._copy(prepared_path, output_path)
            except SigningError as exc:
                logger.error("Bypass copy failed: %s", exc)
                return SigningResult(SigningOutcome.failed, None, str(exc))
            logger.info("Signing bypass active (%s): prepared file copied as output", command.template.strip())
            return SigningResult(SigningOutcome.degraded, output_path, "signing disabled by configuration")

        # a leftover file from an earlier run must not count as fresh output
        output_path.unlink(missing_ok=True)
        returncode, diagnostics = self._run(command, cancel)
        if returncode == 0 and output_path.exists():
            logger.info("External signer %s completed", command.program)
            return SigningResult(SigningOutcome.signed, output_path, diagnostics, returncode)

        if returncode == 0:
            diagnostics = (diagnostics + "\nsigner exited 0 but wrote no output").strip()
        logger.error(
            "External signer %s failed (exit %s): %s",
            command.program or "<empty>",
            returncode,
            diagnostics[:DIAGNOSTICS_LIMIT],
        )

        if not fallback:
            output_path.unlink(missing_ok=True)
            return SigningResult(SigningOutcome.failed, None, diagnostics, returncode)

        try:
            self._copy(prepared_path, output_path)
        except SigningError as exc:
            logger.error("Fallback copy failed: %s", exc)
            return SigningResult(SigningOutcome.failed, None, f"{diagnostics}\n{exc}".strip(), returncode)

        logger.warning("Returning the prepared file unsigned after signer failure")
        return SigningResult(SigningOutcome.degraded, output_path, diagnostics, returncode)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _run(
        self, command: SigningCommand, cancel: threading.Event | None
    ) -> Tuple[Optional[int], str]:
        """Return ``(returncode, captured output)``; returncode is None when no exit status exists."""
        if not command.argv:
            return None, "signing command is empty or could not be parsed"

        try:
            process = subprocess.Popen(
                command.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as exc:
            return None, f"could not start signer: {exc}"

        deadline = None if self.timeout_seconds is None else time.monotonic() + self.timeout_seconds
        while True:
            try:
                stdout, stderr = process.communicate(timeout=self.poll_interval)
                return process.returncode, _join_output(stdout, stderr)
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    reason = "signer cancelled"
                elif deadline is not None and time.monotonic() >= deadline:
                    reason = f"signer timed out after {self.timeout_seconds:g}s"
                else:
                    continue
                return None, _join_output(*_terminate(process), reason)

    @staticmethod
    def _copy(source: Path, destination: Path) -> None:
        try:
            shutil.copyfile(source, destination)
        except OSError as exc:
            raise SigningError(f"could not copy {source.name} to {destination.name}: {exc}") from exc


def _join_output(*parts: str | None) -> str:
    return "\n".join(part.strip() for part in parts if part and part.strip())


def _terminate(process: subprocess.Popen) -> Tuple[str, str]:
    """Kill the signer and everything it started, then collect what it printed.

    The signer runs in its own session, so killing the process group also
    stops wrapper-script children that would otherwise hold the pipes open.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (AttributeError, ProcessLookupError, PermissionError):
        process.kill()

    try:
        return process.communicate(timeout=KILL_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        for pipe in (process.stdout, process.stderr):
            if pipe is not None:
                pipe.close()
        logger.warning("Signer output pipes still open after kill, closed without draining")
        return "", ""
