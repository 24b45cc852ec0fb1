"""Toast sink for success/error feedback after each mutation.

Purely UX. A notifier that raises is logged and ignored; it never changes the
outcome of a store operation.
"""

from dataclasses import dataclass
from typing import Literal, Protocol

from src.timetable.logging import get_logger

logger = get_logger(__name__)

Variant = Literal["default", "destructive"]


class Notifier(Protocol):
    def notify(self, title: str, description: str, variant: Variant = "default") -> None:
        ...


@dataclass(frozen=True)
class Toast:
    title: str
    description: str
    variant: Variant = "default"


class LogNotifier:
    """Writes toasts as structured log events (headless use, scripts)."""

    def notify(self, title: str, description: str, variant: Variant = "default") -> None:
        log = logger.warning if variant == "destructive" else logger.info
        log("toast", title=title, description=description, variant=variant)


class RecordingNotifier:
    """Keeps every toast in order."""

    def __init__(self) -> None:
        self.toasts: list[Toast] = []

    def notify(self, title: str, description: str, variant: Variant = "default") -> None:
        self.toasts.append(Toast(title, description, variant))

    @property
    def errors(self) -> list[Toast]:
        return [t for t in self.toasts if t.variant == "destructive"]

    def clear(self) -> None:
        self.toasts.clear()


def safe_notify(
    notifier: Notifier, title: str, description: str, variant: Variant = "default"
) -> None:
    try:
        notifier.notify(title, description, variant)
    except Exception as e:
        logger.warning("toast_failed", error=str(e), type=type(e).__name__)
