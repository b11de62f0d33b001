from enum import Enum


class ErrorKind(Enum):
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_INPUT = "invalid_input"
    DEGENERATE_GEOMETRY = "degenerate_geometry"


class FieldMapError(Exception):
    """Base error for anything the map screen reports back to the user."""

    def __init__(self, message, kind=ErrorKind.INVALID_INPUT):
        super().__init__(message)
        self.message = message
        self.kind = kind

    def __str__(self):
        return self.message


class GridError(FieldMapError):
    pass


class TideError(FieldMapError):
    pass


class StoreError(FieldMapError):
    pass


class SensorError(FieldMapError):
    pass
