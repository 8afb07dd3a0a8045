"""
ferry.exceptions
================

Exception definitions for ferry.
"""


class FerryException(Exception):
    """Base class for all exceptions defined by ferry."""


class ConfigurationError(FerryException):
    """Error in configuration."""


class ConfigSectionNotFoundError(KeyError, ConfigurationError):
    """The config section could not be found."""


class ConfigParameterNotFoundError(KeyError, ConfigurationError):
    """The config parameter could not be found."""


class ValidationError(ValueError, FerryException):
    """A path or argument is invalid. Never retried."""


class SecurityError(FerryException):
    """Security-related error."""


class SecretNotFoundError(KeyError, SecurityError):
    """No secret is stored under the requested name."""

    def __str__(self):
        # KeyError quotes its argument; we want the message as written.
        return str(self.args[0]) if self.args else ''


class AccessDeniedError(PermissionError, SecurityError):
    """The caller lacks the rights to read the secret."""


class CryptographyError(SecurityError):
    """Error during encryption or decryption."""


class EncryptionError(CryptographyError):
    """Error during encryption or key derivation."""


class DecryptionError(CryptographyError):
    """Error during decryption."""


class SessionError(ConnectionError, FerryException):
    """Base class for remote session errors."""


class AuthError(SessionError):
    """The remote endpoint rejected the credentials. Never retried."""


class NetworkError(SessionError):
    """The remote endpoint could not be reached, or the connection failed or timed out."""


class TransferError(NetworkError):
    """A transfer was interrupted or incomplete. Retried like any other network error."""


class ConnectionOpenError(SessionError):
    """The session is open."""


class ConnectionNotOpenError(SessionError):
    """The session is closed."""


class CleanupWarning(UserWarning):
    """A cleanup step failed. Reported, never escalated."""


class PluginError(FerryException):
    """Plugin-related error."""


class PluginExistsError(KeyError, PluginError):
    """The plugin already exists."""


class InvalidPluginError(ValueError, PluginError):
    """The plugin is invalid."""


class PluginNotFoundError(KeyError, PluginError):
    """The plugin does not exist or could not be found."""


class OperationNotSupportedError(NotImplementedError, FerryException):
    """The requested operation is not available for this object."""


RETRYABLE_ERRORS = (NetworkError,)


def verify_type(obj, typ, *, non_empty=False, allow_none=False):
    """
    Verify that the object has the given type. If not, raise an appropriate exception.

    :param obj: The object to check.
    :param typ: The expected type (or a tuple of types).
    :param non_empty: If True, require the object to evaluate as True in a boolean context. (Default
        False)
    :param allow_none: If True, allow the object to be None. (Default False)
    """
    if allow_none and obj is None:
        return
    if not isinstance(obj, typ):
        raise TypeError(type(obj), typ)
    if non_empty and not obj:
        raise ValueError(obj)


def verify_callable(obj, *, allow_none=False):
    """
    Verify that the object is callable. If not, raise an appropriate exception.

    :param obj: The object to check.
    :param allow_none: If True, allow the object to be None. (Default False)
    """
    if allow_none and obj is None:
        return
    if not callable(obj):
        raise TypeError(callable, obj)
