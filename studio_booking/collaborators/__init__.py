from studio_booking.collaborators.notifications import (
    NotificationCollaborator,
    PushNotifier,
    dispatch_events,
)
from studio_booking.collaborators.persistence import (
    InMemoryPersistence,
    PersistenceCollaborator,
)

__all__ = [
    "NotificationCollaborator",
    "PushNotifier",
    "dispatch_events",
    "InMemoryPersistence",
    "PersistenceCollaborator",
]
