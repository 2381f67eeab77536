class StoreError(Exception):
    """Read or write failure against the booking/room persistence layer."""

    def __init__(self, message, room_id=None):
        super().__init__(message)
        self.room_id = room_id
