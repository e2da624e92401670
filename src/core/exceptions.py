"""Exception hierarchy for Water Order Bot."""


class WaterBotError(Exception):
    """Base exception for all Water Order Bot errors."""
    pass


class ConfigurationError(WaterBotError):
    """Required setting (credentials, recipient) is missing."""
    pass


class MailboxError(WaterBotError):
    """Gmail API call failed."""
    pass


class NotificationError(WaterBotError):
    """Chat notification could not be delivered."""
    pass


class DatabaseError(WaterBotError):
    """Database operation failed."""
    pass
