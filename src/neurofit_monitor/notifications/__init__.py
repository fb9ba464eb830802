"""Notification sub-package: multi-channel alert delivery."""

from neurofit_monitor.notifications.handlers import (
    DispatchResult,
    NotificationDispatcher,
    NotificationHandler,
    create_dispatcher,
    format_alert_text,
)

__all__ = [
    "DispatchResult",
    "NotificationDispatcher",
    "NotificationHandler",
    "create_dispatcher",
    "format_alert_text",
]
