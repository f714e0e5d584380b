"""Domain-specific errors for ism7ctl."""


class Ism7Error(Exception):
    """Base error for ism7ctl."""


class ParameterLoadError(Ism7Error):
    """Raised when reading telegram map files fails."""


class ParameterValidationError(Ism7Error):
    """Raised when a telegram map does not conform to schema or semantics."""


class TransportError(Ism7Error):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on TCP/TLS connect failures."""


class TransportReadError(TransportError):
    """Raised when reading from the gateway connection fails."""


class TransportWriteError(TransportError):
    """Raised when writing to the gateway connection fails."""


class FramingError(Ism7Error):
    """Raised on malformed frame headers or a truncated stream."""


class DecodeError(Ism7Error):
    """Raised when a frame payload cannot be turned into a message."""


class UnsupportedTypeError(DecodeError):
    """Raised when a frame carries a type tag with no registered message."""


class ProtocolError(Ism7Error):
    """Base error for responses the gateway rejected or could not complete."""


class AuthenticationError(ProtocolError):
    """Raised when the gateway refuses the login."""


class GatewayError(ProtocolError):
    """Raised when a bundle response carries an error message or a non-OK state."""
