from .usage import UsageRepository
from .hidden_places import HiddenPlacesRepository
from .saved_places import SavedPlacesRepository
from .history import HistoryRepository
from .collections import CollectionsRepository
from . import models

__all__ = [
    "UsageRepository",
    "HiddenPlacesRepository",
    "SavedPlacesRepository",
    "HistoryRepository",
    "CollectionsRepository",
    "models",
]
