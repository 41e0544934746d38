
from . import documents

routers = [
    documents.router,
]

__all__ = [
    "routers",
]
