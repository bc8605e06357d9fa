"""Draft trails module"""

from .records import DraftLookup, DraftStatus, DraftTrail, LookupOutcome
from .store import DraftStore, JsonFileDraftStore
from .service import DraftTrailsService
from .router import router

__all__ = [
    "DraftLookup",
    "DraftStatus",
    "DraftTrail",
    "LookupOutcome",
    "DraftStore",
    "JsonFileDraftStore",
    "DraftTrailsService",
    "router",
]
