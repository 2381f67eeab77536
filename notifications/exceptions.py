class NotificationError(Exception):
    """Base class for notification delivery failures."""


class SMSDeliveryError(NotificationError):
    pass
