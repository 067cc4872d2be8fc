"""Memory: rolling conversation context and editor history.

Public API: ConversationContext, format_history, ClineHistorySource + schema types.
"""

from duet.memory.context import ConversationContext
from duet.memory.history import ClineHistorySource, default_tasks_dir, format_history
from duet.memory.schemas import ContentPart, ConversationEntry, HistoryMessage

__all__ = [
    "ClineHistorySource",
    "ContentPart",
    "ConversationContext",
    "ConversationEntry",
    "HistoryMessage",
    "default_tasks_dir",
    "format_history",
]
