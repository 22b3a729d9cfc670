from app.models import Conversation

from .exceptions import ConversationClosedError


def is_conversation_open(conversation: Conversation) -> bool:
    return bool(conversation.is_active)


def ensure_conversation_open(conversation: Conversation) -> None:
    """Lifecycle gate for every send path. Closed is terminal."""
    if not is_conversation_open(conversation):
        raise ConversationClosedError(
            f"Conversation '{conversation.id}' is closed; new messages are not accepted."
        )
