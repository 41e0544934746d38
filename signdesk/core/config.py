from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PFX_TEMPLATE = (
    'java -jar /opt/jsignpdf/jSignPdf.jar -ks "{pfx}" -kspass "{pfxPassword}" -visible '
    '-reason "{reason}" -location "{location}" -signed "{output}" "{input}"'
)
DEFAULT_STORED_TEMPLATE = 'libresign --sign "{input}" --output "{output}"'


@dataclass(frozen=True)
class SigningConfig:
    """Operator-controlled signing configuration, built once and handed to the pipeline."""

    direct_template: str = "copy"
    stored_template: str = DEFAULT_STORED_TEMPLATE
    credential_template: str = DEFAULT_PFX_TEMPLATE
    cert_path: str = ""
    key_path: str = ""
    key_password: str = ""
    default_anchor: str = "bottom-left"
    default_signer_name: str = ""
    default_reason: str = ""
    default_location: str = ""
    timeout_seconds: float = 120.0


class Settings(BaseSettings):
    """Application settings, loaded from the environment and an optional .env file.

    Command templates are operator configuration. They are substituted without
    any escaping and must never be built from request data.
    """

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "signdesk"
    app_version: str = "0.1.0"
    environment: str = "production"

    base_dir: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    storage_dir: Optional[Path] = None
    upload_dir: Optional[Path] = None
    public_dir: Optional[Path] = None
    temp_dir: Optional[Path] = None

    database_url: Optional[str] = None

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # unset: "copy" for direct signing, libresign for stored records
    sign_command_template: Optional[str] = None
    sign_pfx_template: str = DEFAULT_PFX_TEMPLATE
    cert_path: str = ""
    key_path: str = ""
    key_password: str = ""

    sign_label_position: str = "bottom-left"
    default_signer_name: str = ""
    default_reason: str = ""
    default_location: str = ""
    sign_timeout_seconds: float = 120.0

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def public_uploads_dir(self) -> Path:
        return self.public_dir / "uploads"

    def configure_paths(self) -> None:
        """Resolve default directories and create them when missing."""
        self.storage_dir = (self.storage_dir or (self.base_dir / "storage")).resolve()
        self.upload_dir = (self.upload_dir or (self.base_dir / "uploads")).resolve()
        self.public_dir = (self.public_dir or (self.base_dir / "public")).resolve()
        self.temp_dir = (self.temp_dir or (self.storage_dir / "tmp")).resolve()
        self.database_url = self.database_url or f"sqlite:///{self.storage_dir / 'signdesk.db'}"

        for directory in (self.storage_dir, self.upload_dir, self.public_dir, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self.public_uploads_dir.mkdir(parents=True, exist_ok=True)

    def signing_config(self) -> SigningConfig:
        return SigningConfig(
            direct_template=self.sign_command_template or "copy",
            stored_template=self.sign_command_template or DEFAULT_STORED_TEMPLATE,
            credential_template=self.sign_pfx_template,
            cert_path=self.cert_path,
            key_path=self.key_path,
            key_password=self.key_password,
            default_anchor=self.sign_label_position,
            default_signer_name=self.default_signer_name,
            default_reason=self.default_reason,
            default_location=self.default_location,
            timeout_seconds=self.sign_timeout_seconds,
        )


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    settings.configure_paths()
    return settings
