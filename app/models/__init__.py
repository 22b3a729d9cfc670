# Makes 'models' a package and simplifies imports

from .base import BaseModel, metadata
from .conversation import Conversation
from .message import Message

__all__ = [
    "BaseModel",
    "metadata",
    "Conversation",
    "Message",
]
