"""HTTP surface for the UI layer."""

from chatlens.api.main import create_app

__all__ = ["create_app"]
