"""Error taxonomy for the QR login flow."""


class LoginError(Exception):
    """Base class for every failure of a login attempt."""


class LoginConnectionError(LoginError):
    """Transport-level failure talking to Telegram. Fatal to the attempt."""


class ProtocolError(LoginError):
    """Unexpected result kind or RPC failure from the token exchange."""


class NotFoundError(LoginError):
    """The ephemeral login entry is gone (expired or abandoned)."""


class ValidationError(LoginError):
    """Authorization payload or model data has the wrong shape."""


class StoreError(LoginError):
    """The session store backend failed."""
