from aios.models.chat import Chat, Message
from aios.models.organization import Organization, User
from aios.models.usage import DailyUsage

__all__ = ["Chat", "DailyUsage", "Message", "Organization", "User"]
