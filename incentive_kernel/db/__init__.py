"""Database layer - engine, base classes and portable column types."""

from incentive_kernel.db.base import (
    UUID,
    Base,
    PortableDecimal,
    TrackedBase,
    UTCDateTime,
    UUIDString,
)
from incentive_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "PortableDecimal",
    "TrackedBase",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "build_engine",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
