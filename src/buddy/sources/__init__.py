from buddy.sources.base import ModelSource
from buddy.sources.combined import CombinedModelSource
from buddy.sources.local import LocalModelSource, discover_models
from buddy.sources.remote import RemoteModelSource

__all__ = [
    "CombinedModelSource",
    "LocalModelSource",
    "ModelSource",
    "RemoteModelSource",
    "discover_models",
]
