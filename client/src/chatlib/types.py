from enum import Enum


class NotificationLevel(Enum):
    SUCCESS = 'success'
    ERROR = 'error'


class BusyFlag(Enum):
    """In-flight markers on the session store, one per auth action."""
    SIGNING_UP = 'is_signing_up'
    LOGGING_IN = 'is_logging_in'
    UPDATING_PROFILE = 'is_updating_profile'
    CHECKING_AUTH = 'is_checking_auth'
