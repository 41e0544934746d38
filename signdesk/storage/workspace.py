from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from signdesk.utils.file_utils import safe_filename

logger = logging.getLogger(__name__)


class TempWorkspace:
    """Transient files for one signing request.

    Paths are prefixed with a random token, so concurrent requests for files
    with the same name never share a path. Nothing is created on disk until a
    caller writes to a path. Leaving the ``with`` block removes every path
    unless :meth:`detach` handed cleanup over to someone else, typically a
    response background task that runs once the output has been streamed.
    """

    def __init__(self, root: Path, original_name: str | None, *, credential: bool = False) -> None:
        filename = safe_filename(original_name)
        stem = Path(filename).stem or "document"
        suffix = Path(filename).suffix or ".pdf"
        token = uuid4().hex

        self.root = Path(root)
        self.download_name = f"{stem}.signed{suffix}"
        self.input_path = self.root / f"{token}__{stem}{suffix}"
        self.prepared_path = self.root / f"{token}__{stem}.prepared{suffix}"
        self.output_path = self.root / f"{token}__{stem}.signed{suffix}"
        self.credential_path: Optional[Path] = self.root / f"{token}__signer.pfx" if credential else None
        self._detached = False
        self._cleaned = False

    @property
    def paths(self) -> List[Path]:
        paths = [self.input_path, self.prepared_path, self.output_path]
        if self.credential_path is not None:
            paths.append(self.credential_path)
        return paths

    def detach(self) -> "TempWorkspace":
        """Leave cleanup to the caller; the ``with`` block will no longer remove files."""
        self._detached = True
        return self

    def cleanup(self) -> None:
        """Best-effort removal of every allocated path; errors are logged, never raised."""
        if self._cleaned:
            return
        self._cleaned = True
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.debug("Could not remove temp file %s: %s", path, exc)

    def __enter__(self) -> "TempWorkspace":
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None or not self._detached:
            self.cleanup()
