"""Online learning from user corrections."""

from chatlens.learning.store import (
    CorrectionRecord,
    CorrectionStore,
    CorrectionStoreData,
    InMemoryBackend,
    JsonFileBackend,
    SqliteBackend,
    StoreError,
    StructureCorrection,
    UserTopicEntry,
    get_default_store,
)
from chatlens.learning.weights import extract_active_features, recompute_weights
from chatlens.learning.feedback import build_correction, correction_from_text, record_role_correction

__all__ = [
    "CorrectionRecord",
    "CorrectionStore",
    "CorrectionStoreData",
    "InMemoryBackend",
    "JsonFileBackend",
    "SqliteBackend",
    "StoreError",
    "StructureCorrection",
    "UserTopicEntry",
    "get_default_store",
    "extract_active_features",
    "recompute_weights",
    "build_correction",
    "correction_from_text",
    "record_role_correction",
]
