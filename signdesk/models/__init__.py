
from .signing import (
    SignStoredRequest,
    StampOptions,
    format_stamp_time,
)

__all__ = [
    "SignStoredRequest",
    "StampOptions",
    "format_stamp_time",
]
