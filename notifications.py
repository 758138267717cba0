from abc import ABC, abstractmethod
import structlog

from config import get_settings
from models import Account

logger = structlog.get_logger()


class NotificationService(ABC):
    @abstractmethod
    def notify_about_transfer(self, account: Account, message: str) -> None:
        """Tell the account holder about a completed transfer."""
        pass


class LoggingNotificationService(NotificationService):
    """Delivers transfer notifications to the application log."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def notify_about_transfer(self, account: Account, message: str) -> None:
        if not self.enabled:
            return
        logger.info(
            "Sending transfer notification",
            account_id=account.accountId,
            message=message
        )


_notification_service = None


def get_notification_service() -> NotificationService:
    global _notification_service
    if _notification_service is None:
        _notification_service = LoggingNotificationService(
            enabled=get_settings().notifications_enabled
        )
    return _notification_service
