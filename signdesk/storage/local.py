import shutil
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import UploadFile

from signdesk.core.config import Settings, get_settings
from signdesk.storage.workspace import TempWorkspace
from signdesk.utils.file_utils import safe_filename


class LocalStorage:
    """Local disk layout: persistent uploads, public uploads and per-request temp files."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self.upload_dir = Path(settings.upload_dir)
        self.public_upload_dir = Path(settings.public_uploads_dir)
        self.temp_dir = Path(settings.temp_dir)

        for directory in (self.upload_dir, self.public_upload_dir, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _generate_filename(original_name: str | None) -> str:
        return f"{uuid4().hex}__{safe_filename(original_name)}"

    def save_upload(self, upload: UploadFile, *, public: bool = False) -> Path:
        directory = self.public_upload_dir if public else self.upload_dir
        target_path = directory / self._generate_filename(upload.filename)
        upload.file.seek(0)
        with target_path.open("wb") as buffer:
            shutil.copyfileobj(upload.file, buffer)
        upload.file.seek(0)
        return target_path

    def workspace(self, original_name: str | None, *, credential: bool = False) -> TempWorkspace:
        return TempWorkspace(self.temp_dir, original_name, credential=credential)
