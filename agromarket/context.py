"""
Application context: everything a request handler needs, built once per app.
"""
from dataclasses import dataclass, field

from fastapi import Request

from .config import Config
from .database import Database
from .listing_query import KeyedLocks
from .uploads import ImageStore


@dataclass
class AppContext:
    config: Config
    db: Database
    images: ImageStore
    listing_locks: KeyedLocks = field(default_factory=KeyedLocks)

    @classmethod
    def from_config(cls, config: Config) -> "AppContext":
        return cls(
            config=config,
            db=Database(config.DB_PATH),
            images=ImageStore(config.UPLOAD_DIR, max_bytes=config.MAX_IMAGE_BYTES),
        )


def get_context(request: Request) -> AppContext:
    """Dependency returning the context attached by ``create_app``."""
    return request.app.state.context
