"""
SFTP session support, built on paramiko.
"""


import logging
import posixpath
import socket
import stat


import paramiko


from ..abc.sessions import Connector, Session
from ..exceptions import AccessDeniedError, AuthError, FerryException, NetworkError, \
    TransferError, ValidationError, verify_type
from ..plugins import session_type
from ..security import redaction
from ..transfers import TransferRequest, TransferResult


__all__ = [
    'SFTPConnector',
    'SFTPSession',
]


log = logging.getLogger(__name__)


DEFAULT_SFTP_PORT = 22
DEFAULT_TIMEOUT = 30


class RejectUnknownHostPolicy(paramiko.MissingHostKeyPolicy):
    """
    Refuse to connect to a server whose host key is not already trusted. Raises AuthError, so the
    refusal is never retried.
    """

    def missing_host_key(self, client, hostname, key):
        raise AuthError("Host key for %s is not trusted; add it to known_hosts first." % hostname)


HOST_KEY_POLICIES = {
    'reject': RejectUnknownHostPolicy,
    'warn': paramiko.WarningPolicy,
    'auto_add': paramiko.AutoAddPolicy,
}


@session_type('sftp')
class SFTPConnector(Connector):
    """
    Stores the SFTP connection information as a single object which can then be passed around
    instead of using multiple parameters to a function. Passwords are never part of it; they are
    supplied by a secret when a session is opened.
    """

    @classmethod
    def load_url(cls, url, settings=None, **kwargs):
        """
        Build a connector from an endpoint URL of the form sftp://[user@]host[:port].

        :param url: The endpoint URL, as split by ferry.abc.sessions.parse_endpoint().
        :param settings: Optional ferry.settings.TransferSettings supplying the timeout and host
            key policy.
        :return: A new SFTPConnector.
        """
        if not url.hostname:
            raise ValidationError("An SFTP endpoint requires a host name.")
        if url.path not in ('', '/'):
            raise ValidationError("The destination path belongs in the request, not the endpoint.")
        try:
            port = url.port or DEFAULT_SFTP_PORT
        except ValueError:
            raise ValidationError("Invalid port in endpoint %r." % url.netloc) from None

        if settings is not None:
            kwargs.setdefault('timeout', settings.timeout)
            kwargs.setdefault('host_key_policy', settings.host_key_policy)
            kwargs.setdefault('known_hosts', settings.known_hosts)

        return cls(url.hostname, port, url.username or None, **kwargs)

    def __init__(self, host, port=DEFAULT_SFTP_PORT, user=None, timeout=DEFAULT_TIMEOUT,
                 host_key_policy='reject', known_hosts=None):
        verify_type(host, str, non_empty=True)
        verify_type(port, int)
        verify_type(user, str, non_empty=True, allow_none=True)
        if host_key_policy not in HOST_KEY_POLICIES:
            raise ValidationError("Unknown host key policy: %r" % host_key_policy)

        super().__init__(SFTPSession)

        self._host = host
        self._port = port
        self._user = user
        self._timeout = timeout
        self._host_key_policy = host_key_policy
        self._known_hosts = known_hosts

    def __repr__(self):
        server_string = self._host
        if self._user:
            server_string = self._user + '@' + server_string
        if self._port != DEFAULT_SFTP_PORT:
            server_string += ':' + str(self._port)
        return type(self).__name__ + '(' + repr(server_string) + ')'

    @property
    def host(self):
        """The DNS name or IP address of the remote server."""
        return self._host

    @property
    def port(self):
        """The remote server's port."""
        return self._port

    @property
    def user(self):
        """The user name from the endpoint, which takes precedence over the secret's."""
        return self._user

    @property
    def timeout(self):
        """Seconds before a blocking network call is abandoned."""
        return self._timeout

    @property
    def host_key_policy(self):
        return self._host_key_policy

    @property
    def known_hosts(self):
        return self._known_hosts


class SFTPSession(Session):
    """
    An authenticated SFTP session.
    """

    def __init__(self, connector):
        verify_type(connector, SFTPConnector)
        super().__init__(connector)
        self._client = None
        self._sftp = None

    def _new_client(self):
        connector = self._connector
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        if connector.known_hosts:
            client.load_host_keys(connector.known_hosts)
        client.set_missing_host_key_policy(HOST_KEY_POLICIES[connector.host_key_policy]())
        return client

    def open(self, secret=None):
        """
        Connect and authenticate with the secret's password. The password is handed to paramiko
        for this call only.

        :param secret: A ferry.security.credentials.Secret.
        """
        self.verify_closed()
        if not secret:
            raise AuthError("An SFTP session requires a secret to authenticate with.")

        connector = self._connector
        user = connector.user or secret.user
        if not user:
            raise AuthError("No user name is available for %s." % connector.host)
        address = '%s@%s:%s' % (user, connector.host, connector.port)

        log.debug("Opening SFTP session to %s.", address)
        client = self._new_client()
        try:
            client.connect(
                connector.host,
                port=connector.port,
                username=user,
                password=secret.password,
                timeout=connector.timeout,
                banner_timeout=connector.timeout,
                auth_timeout=connector.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            sftp = client.open_sftp()
            sftp.get_channel().settimeout(connector.timeout)
        except FerryException:
            client.close()
            raise
        except paramiko.AuthenticationException:
            client.close()
            raise AuthError("Authentication failed for %s." % address) from None
        except paramiko.BadHostKeyException:
            client.close()
            raise AuthError("Host key for %s does not match known_hosts." % address) from None
        except socket.timeout:
            client.close()
            raise NetworkError("Timed out connecting to %s." % address) from None
        except (paramiko.SSHException, OSError, EOFError) as exc:
            client.close()
            raise NetworkError("Could not connect to %s: %s" %
                               (address, redaction.redact(exc))) from None

        self._client = client
        self._sftp = sftp
        super().open(secret)
        log.debug("SFTP session to %s is open.", address)

    @property
    def is_open(self):
        if not self._is_open:
            return False
        transport = self._client.get_transport() if self._client is not None else None
        if transport is None or not transport.is_active():
            # The server hung up on us.
            self.close()
        return self._is_open

    def close(self):
        """Close the SFTP channel and the SSH connection beneath it."""
        sftp, client = self._sftp, self._client
        self._sftp = self._client = None
        super().close()
        try:
            if sftp is not None:
                sftp.close()
        finally:
            if client is not None:
                client.close()

    def _make_dirs(self, path, known):
        # Create each missing directory along the path, remembering those already seen.
        if path in ('', '/') or path in known:
            return
        self._make_dirs(posixpath.dirname(path), known)
        try:
            attributes = self._sftp.stat(path)
        except FileNotFoundError:
            log.debug("Creating remote directory %s.", path)
            self._sftp.mkdir(path)
        else:
            if not stat.S_ISDIR(attributes.st_mode):
                raise ValidationError("Destination %s exists and is not a directory." % path)
        known.add(path)

    def transfer(self, request):
        """
        Upload the files described by the request. Remote files are overwritten by name.

        :param request: A TransferRequest.
        :return: A TransferResult.
        """
        verify_type(request, TransferRequest)
        self.verify_open()

        files = size = 0
        paths = []
        known_dirs = set()
        for item in request.iter_items():
            remote_path = self.destination_path(request, item)
            try:
                self._make_dirs(posixpath.dirname(remote_path), known_dirs)
                self._sftp.put(item.local_path, remote_path, confirm=True)
            except FerryException:
                raise
            except PermissionError:
                raise AccessDeniedError("Permission denied writing %s." % remote_path) from None
            except socket.timeout:
                self._drop_if_dead()
                raise TransferError("Timed out sending %s after %d file(s)." %
                                    (remote_path, files)) from None
            except (paramiko.SSHException, OSError, EOFError) as exc:
                self._drop_if_dead()
                raise TransferError("Failed sending %s after %d file(s): %s" %
                                    (remote_path, files, redaction.redact(exc))) from None
            log.debug("Sent %s to %s (%d bytes).", item.local_path, remote_path, item.size)
            files += 1
            size += item.size
            paths.append(remote_path)

        return TransferResult.succeeded(files, size, paths)

    def _drop_if_dead(self):
        # Checking is_open closes the session if the transport has gone away.
        if not self.is_open:
            log.debug("SFTP session to %s was lost.", self._connector.host)
