"""Stamp-then-sign pipeline shared by every signing route.

Per request: the raw upload is staged in a :class:`TempWorkspace`, stamped
into the prepared file (or, when stamping fails, the raw file is used as
is), then handed to the external signer. The general flow falls back to an
unsigned copy when the signer fails; the credential-file flow does not.
The outcome is always reported through :class:`SigningResult`.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

from signdesk.core.config import SigningConfig
from signdesk.models.signing import StampOptions, format_stamp_time
from signdesk.services.command_template import SigningCommand
from signdesk.services.signer import ExternalSigner, SigningResult
from signdesk.services.stamp_service import StampService, clean_signer_names
from signdesk.storage.workspace import TempWorkspace

logger = logging.getLogger(__name__)

PENDING_STATUS = "Pending signature"


class SigningPipeline:
    def __init__(
        self,
        config: SigningConfig,
        stamp_service: Optional[StampService] = None,
        signer: Optional[ExternalSigner] = None,
    ) -> None:
        self.config = config
        self.stamp_service = stamp_service or StampService()
        self.signer = signer or ExternalSigner(timeout_seconds=config.timeout_seconds)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------
    def sign_direct(
        self,
        workspace: TempWorkspace,
        document_bytes: bytes,
        signer_names: Sequence[str],
        layout: Optional[dict] = None,
        cancel: threading.Event | None = None,
    ) -> SigningResult:
        """General flow: operator certificate and key, fallback copy on signer failure."""
        names = clean_signer_names(signer_names)
        options = self._stamp_options(layout, certificate_text=self._certificate_label())
        prepared = self._prepare(workspace, document_bytes, names, options)

        command = SigningCommand.from_template(
            self.config.direct_template,
            {
                "input": str(prepared),
                "output": str(workspace.output_path),
                "cert": self.config.cert_path,
                "key": self.config.key_path,
                "keyPassword": self.config.key_password,
                "signerName": names[0] if names else "",
                "reason": "",
                "location": "",
            },
        )
        return self.signer.invoke(command, prepared, workspace.output_path, fallback=True, cancel=cancel)

    def sign_with_credential(
        self,
        workspace: TempWorkspace,
        document_bytes: bytes,
        credential_bytes: bytes,
        password: str,
        *,
        credential_name: str | None = None,
        signer_name: str | None = None,
        reason: str | None = None,
        location: str | None = None,
        layout: Optional[dict] = None,
        cancel: threading.Event | None = None,
    ) -> SigningResult:
        """Credential-file flow: a per-request PFX container, no fallback on failure."""
        if workspace.credential_path is None:
            raise ValueError("workspace was allocated without a credential path")

        workspace.credential_path.write_bytes(credential_bytes)
        signer_name = signer_name or self.config.default_signer_name
        options = self._stamp_options(layout, certificate_text=credential_name or "PFX")
        prepared = self._prepare(workspace, document_bytes, clean_signer_names(signer_name), options)

        command = SigningCommand.from_template(
            self.config.credential_template,
            {
                "input": str(prepared),
                "output": str(workspace.output_path),
                "pfx": str(workspace.credential_path),
                "pfxPassword": password,
                "signerName": signer_name,
                "reason": reason or self.config.default_reason,
                "location": location or self.config.default_location,
            },
        )
        return self.signer.invoke(command, prepared, workspace.output_path, fallback=False, cancel=cancel)

    def sign_stored(self, input_path: Path, cancel: threading.Event | None = None) -> SigningResult:
        """Stored-record flow: no stamping, output written next to the stored file."""
        output_path = input_path.with_name(f"{input_path.stem}.signed{input_path.suffix or '.pdf'}")
        command = SigningCommand.from_template(
            self.config.stored_template,
            {"input": str(input_path), "output": str(output_path)},
        )
        return self.signer.invoke(command, input_path, output_path, fallback=True, cancel=cancel)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _prepare(
        self,
        workspace: TempWorkspace,
        document_bytes: bytes,
        names: Sequence[str],
        options: StampOptions,
    ) -> Path:
        """Stage the upload and return the path the signer should read."""
        workspace.input_path.write_bytes(document_bytes)
        stamped, ok = self.stamp_service.stamp(document_bytes, names, options)
        if not ok:
            return workspace.input_path
        workspace.prepared_path.write_bytes(stamped)
        return workspace.prepared_path

    def _stamp_options(self, layout: Optional[dict], *, certificate_text: str) -> StampOptions:
        values = {key: value for key, value in (layout or {}).items() if value is not None}
        values.setdefault("anchor", self.config.default_anchor)
        if not str(values["anchor"]).strip():
            values["anchor"] = self.config.default_anchor
        return StampOptions(
            **values,
            date_time_text=format_stamp_time(),
            certificate_text=certificate_text,
            status_text=PENDING_STATUS,
        )

    def _certificate_label(self) -> str:
        return Path(self.config.cert_path).name if self.config.cert_path else "N/A"
