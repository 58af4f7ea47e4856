"""Record schemas and typed store patches."""

from .engagement import (
    Booking,
    BookingStatus,
    LoyaltyProgress,
    Notification,
    NotificationKind,
    NotificationPreferences,
    NotificationTopic,
    RemindersSent,
    User,
    Venue,
    parse_inbox,
)
from .patches import (
    BookingLoyaltyPatch,
    BookingPatch,
    BookingReminderPatch,
    UserLoyaltyPatch,
    UserNotificationsPatch,
    UserPatch,
)

__all__ = [
    "Booking",
    "BookingLoyaltyPatch",
    "BookingPatch",
    "BookingReminderPatch",
    "BookingStatus",
    "LoyaltyProgress",
    "Notification",
    "NotificationKind",
    "NotificationPreferences",
    "NotificationTopic",
    "RemindersSent",
    "User",
    "UserLoyaltyPatch",
    "UserNotificationsPatch",
    "UserPatch",
    "Venue",
    "parse_inbox",
]
