from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from signdesk.services.signing_pipeline import SigningPipeline
from signdesk.storage.local import LocalStorage


def get_storage(request: Request) -> LocalStorage:
    return request.app.state.storage


def get_pipeline(request: Request) -> SigningPipeline:
    return request.app.state.pipeline


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
