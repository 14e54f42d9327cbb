"""Rebuilding request history from rendered messages."""

from ..llm.models import HistoryEntry
from ..models import Message


def _is_reply(message: Message | None) -> bool:
    return (
        message is not None
        and not message.is_user
        and not message.error
        and bool(message.text)
    )


def rebuild_history(messages: list[Message]) -> list[HistoryEntry]:
    """Derive the user/model history that produced a message sequence.

    A user message followed by a model reply forms one pair. A trailing user
    message with no reply yet is kept. Anything else is skipped: user
    messages whose exchange failed, error messages, empty replies and stray
    model messages. For strictly alternating sequences this is plain
    position pairing (even index user, odd index model).

    Args:
        messages: Rendered messages, oldest first

    Returns:
        History entries alternating user/model
    """
    history: list[HistoryEntry] = []
    i = 0
    while i < len(messages):
        message = messages[i]
        if not message.is_user:
            i += 1
            continue

        following = messages[i + 1] if i + 1 < len(messages) else None
        if following is None:
            history.append(HistoryEntry.from_text("user", message.text))
            break
        if _is_reply(following):
            history.append(HistoryEntry.from_text("user", message.text))
            history.append(HistoryEntry.from_text("model", following.text))
            i += 2
        else:
            i += 1
    return history
