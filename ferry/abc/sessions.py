"""
Interface definition for connectors and sessions.
"""


import posixpath
import urllib.parse

from abc import ABCMeta, abstractmethod


from ..exceptions import ConnectionNotOpenError, ConnectionOpenError, ValidationError, \
    verify_type
from ..transfers import TransferRequest


__all__ = [
    "Connector",
    "Session",
    "parse_endpoint",
]


DEFAULT_SCHEME = 'sftp'


def parse_endpoint(endpoint):
    """
    Split an endpoint into its URL parts. A bare [user@]host[:port] is read as an SFTP endpoint.
    Local destinations use file:// or robocopy://, with the path given by the request.

    :param endpoint: The endpoint string.
    :return: A urllib.parse.SplitResult.
    """
    verify_type(endpoint, str, non_empty=True)
    if '://' not in endpoint:
        endpoint = DEFAULT_SCHEME + '://' + endpoint
    parts = urllib.parse.urlsplit(endpoint)
    if parts.password is not None:
        # Passwords come from the secret store, never from the command line or config.
        raise ValidationError("Endpoints must not embed a password.")
    if parts.query or parts.fragment:
        raise ValidationError("Endpoints must not carry a query or fragment.")
    return parts


class Connector(metaclass=ABCMeta):
    """
    The Connector class is an abstract base class for session factories. A Connector represents a
    particular endpoint, often residing on another server, that sessions can be opened against.
    """

    @classmethod
    @abstractmethod
    def load_url(cls, url, **kwargs):
        """
        Build a connector from an endpoint URL.

        :param url: The endpoint URL, as split by parse_endpoint().
        :return: A new connector instance.
        """
        raise NotImplementedError()

    def __init__(self, session_type):
        assert issubclass(session_type, Session)
        self._session_type = session_type

    @property
    def session_type(self):
        """The class to which sessions created by this connector belong."""
        return self._session_type

    @property
    def requires_secret(self):
        """Whether opening a session needs a secret."""
        return True

    def connect(self, *args, **kwargs):
        """
        Create a newly configured session and return it. The session is *not* automatically
        opened.

        :return: A new session instance.
        """
        return self.session_type(self, *args, **kwargs)

    def open(self, secret=None):
        """
        Create a session and open it with the given secret. If opening fails, the half-built
        session is closed before the error propagates.

        :param secret: The secret to authenticate with, if the session needs one.
        :return: The open session.
        """
        session = self.connect()
        try:
            session.open(secret)
        except BaseException:
            session.close()
            raise
        return session


class Session(metaclass=ABCMeta):
    """
    The Session class is an abstract base class for session objects. A session is an authenticated
    link to an endpoint, owning transport resources until it is closed. Use it in a with statement
    once it is open so that it is closed on every exit path:

        with connector.open(secret) as session:
            result = session.transfer(request)
    """

    # The path module used to build destination paths.
    path_module = posixpath

    def __init__(self, connector):
        verify_type(connector, Connector)
        verify_type(self, connector.session_type)
        self._connector = connector
        self._is_open = False

    def __del__(self):
        if getattr(self, '_is_open', None):
            self.close()

    @property
    def connector(self):
        """The connector that created this session."""
        return self._connector

    @property
    def is_open(self):
        """Whether the session is currently open."""
        return self._is_open

    @abstractmethod
    def open(self, secret=None):
        """
        Open the session. The secret is only used for the duration of this call; sessions must
        not keep a reference to it.

        :param secret: The secret to authenticate with, if the session needs one.
        """
        self.verify_closed()
        self._is_open = True

    @abstractmethod
    def close(self):
        """Close the session. Closing a session that is not open does nothing."""
        self._is_open = False

    @abstractmethod
    def transfer(self, request):
        """
        Send the files described by the request. Existing destination files are overwritten by
        name, so repeating a transfer leaves the destination in the same state.

        :param request: A TransferRequest.
        :return: A TransferResult.
        """
        verify_type(request, TransferRequest)
        self.verify_open()
        raise NotImplementedError()

    def destination_path(self, request, item):
        """
        The full destination path for a single transfer item.

        :param request: The TransferRequest.
        :param item: A TransferItem produced by the request.
        :return: The destination path, in this session's path syntax.
        """
        return self.path_module.join(request.destination, *item.relative_path.split('/'))

    def verify_open(self):
        """
        Raise an exception if the session is not open.
        """
        if not self._is_open:
            raise ConnectionNotOpenError("The session is not currently open.")

    def verify_closed(self):
        """
        Raise an exception if the session is not closed.
        """
        if self._is_open:
            raise ConnectionOpenError("The session is currently open.")

    def __enter__(self):
        self.verify_open()
        return self

    # noinspection PyUnusedLocal
    def __exit__(self, exc_type, exc_value, exc_tb):
        self.close()
        return False  # Do not suppress exceptions
