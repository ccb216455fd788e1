from __future__ import annotations

from tailtrack.context.registry import create_default_registry
from tailtrack.db import new_store

registry = create_default_registry()

__version__ = '0.1.0'
__all__ = (
    'new_store',
    'registry'
)
