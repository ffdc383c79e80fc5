"""
FastAPI dependencies.

The correction store is built once per process from settings. Tests swap
it through ``app.dependency_overrides[get_store]``.
"""

from functools import lru_cache

from chatlens.config import Settings, get_settings
from chatlens.learning import CorrectionStore, get_default_store


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache()
def get_store() -> CorrectionStore:
    """Process-wide correction store."""
    return get_default_store(get_settings())
