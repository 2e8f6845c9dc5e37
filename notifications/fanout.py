"""In-app notifications with a per-recipient preference gate."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from config import settings
from contracts import Notification, UserAccount
from store import Collections, RecordStore, to_document

logger = logging.getLogger(__name__)


def accepts_notification(user: Optional[UserAccount], notification_type: str) -> bool:
    """Whether a recipient accepts a notification type.

    Critical types are always accepted; other types are accepted unless the
    recipient explicitly opted out.
    """
    if notification_type in settings.critical_notification_types:
        return True
    if user is None:
        return True
    return user.notification_preferences.get(notification_type, True) is not False


class NotificationService:
    """Stores in-app notifications and looks up their recipients."""

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        doc = self.store.get(Collections.USERS, user_id)
        return UserAccount.model_validate(doc) if doc else None

    def notify(
        self,
        recipient: str,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """Store a notification for one recipient.

        Returns:
            The stored Notification, or None when the recipient opted out
        """
        user = self.get_user(recipient)
        if not accepts_notification(user, type):
            logger.debug("Notification %s suppressed for %s by preferences", type, recipient)
            return None

        notification = Notification(
            recipient=recipient,
            type=type,
            title=title,
            message=message,
            link=link,
            metadata=metadata or {},
            created_at=self.clock(),
        )
        self.store.insert(Collections.NOTIFICATIONS, to_document(notification))
        return notification

    def active_admins(self, exclude_ids: Optional[List[str]] = None) -> List[UserAccount]:
        """Every active administrative-tier account, minus `exclude_ids`."""
        docs = self.store.find(Collections.USERS, {
            "role": {"$in": list(settings.admin_roles)},
            "is_active": True,
        })
        excluded = set(exclude_ids or [])
        return [UserAccount.model_validate(d) for d in docs if d["id"] not in excluded]

    def for_recipient(self, recipient: str, unread_only: bool = False) -> List[Notification]:
        filter: Dict[str, Any] = {"recipient": recipient}
        if unread_only:
            filter["read"] = False
        docs = self.store.find(Collections.NOTIFICATIONS, filter, sort=[("created_at", -1)])
        return [Notification.model_validate(d) for d in docs]

    def mark_read(self, notification_id: str) -> bool:
        return self.store.update(Collections.NOTIFICATIONS, notification_id, {"read": True}) is not None
