"""Notification domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import Conflict, NotFound


class NotificationNotFound(NotFound):
    """The requested notification event does not exist."""

    code = "notification_not_found"


class SuppressionNotFound(NotFound):
    """The requested suppression entry does not exist."""

    code = "suppression_not_found"


class NotificationNotRequeueable(Conflict):
    """Only failed or dead-lettered events can be requeued."""

    code = "notification_not_requeueable"


class SuppressionChangeNotAllowed(Conflict):
    """Only privileged actors may reactivate a suppressed recipient."""

    code = "suppression_change_not_allowed"
