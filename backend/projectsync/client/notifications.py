"""User-facing side effects of a restore: transient notifications and navigation."""
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Non-blocking user notifications."""

    @abstractmethod
    def info(self, message: str) -> None:
        ...

    @abstractmethod
    def success(self, message: str) -> None:
        ...

    @abstractmethod
    def error(self, message: str) -> None:
        ...


class LoggingNotifier(Notifier):
    """Notifier for headless use; routes notifications to the log."""

    def info(self, message: str) -> None:
        logger.info(message)

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)


class Navigator(ABC):
    @abstractmethod
    def redirect_home(self) -> None:
        """Abandon the current chat and go to the default view."""
        ...

    @abstractmethod
    def open_chat(self, chat_ref: str, replace: bool = False) -> None:
        """Show the chat identified by ``chat_ref`` (id or url id)."""
        ...


class LoggingNavigator(Navigator):
    def __init__(self):
        self.location = "/"

    def redirect_home(self) -> None:
        self.location = "/"
        logger.info("Redirecting to home")

    def open_chat(self, chat_ref: str, replace: bool = False) -> None:
        self.location = f"/chat/{chat_ref}"
        logger.info(f"Navigating to {self.location}")
