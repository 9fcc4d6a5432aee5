class ConfigError(ValueError):
    """Configuration or endpoint descriptor is missing or invalid."""


class AuthHeaderError(PermissionError):
    """Authorization header is missing or not a bearer token."""


class ConnectError(RuntimeError):
    """Connection to the tabular server failed or was lost."""


class QueryError(RuntimeError):
    """Query submission or execution failed."""
