from .db import (  # noqa: F401
    ConstraintError,
    MermaidVaultStore,
    NotFoundError,
    StoreError,
    StoreInitError,
)

VERSION = "1.0.0"

__all__ = [
    "ConstraintError",
    "MermaidVaultStore",
    "NotFoundError",
    "StoreError",
    "StoreInitError",
    "VERSION",
]
