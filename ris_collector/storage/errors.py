"""Storage errors."""


class CorruptedStateError(Exception):
    """A persisted record could not be decoded.

    Readers log it and treat the record as absent.
    """

    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupted record at {key}: {reason}")
        self.key = key
        self.reason = reason
