"""
Local and UNC destinations, reached with the current Windows logon.
"""


import logging
import ntpath
import os
import shutil


from ..abc.sessions import Connector, Session
from ..exceptions import AccessDeniedError, FerryException, TransferError, ValidationError, \
    verify_type
from ..plugins import session_type
from ..transfers import TransferRequest, TransferResult


__all__ = [
    'LocalConnector',
    'LocalSession',
]


log = logging.getLogger(__name__)


@session_type('file')
class LocalConnector(Connector):
    """
    A connector for destinations on the local file system or a network share. The process's own
    credentials are used, so sessions need no secret.
    """

    @classmethod
    def load_url(cls, url, settings=None, **kwargs):
        """
        Build a connector from a file:// endpoint. The destination path comes from the request.

        :param url: The endpoint URL, as split by ferry.abc.sessions.parse_endpoint().
        :return: A new LocalConnector.
        """
        if url.netloc or url.path not in ('', '/'):
            raise ValidationError("The destination path belongs in the request, not the endpoint.")
        return cls(**kwargs)

    def __init__(self):
        super().__init__(LocalSession)

    @property
    def requires_secret(self):
        return False

    def __repr__(self):
        return type(self).__name__ + '()'


class LocalSession(Session):
    """
    A session that copies files with the operating system's own file APIs.
    """

    path_module = os.path

    def __init__(self, connector):
        super().__init__(connector)

    def open(self, secret=None):
        """Open the session. A secret, if given, is ignored."""
        super().open(secret)

    def close(self):
        super().close()

    def destination_path(self, request, item):
        # UNC destinations keep their backslashes on every platform.
        if request.destination.startswith('\\\\'):
            return ntpath.join(request.destination, *item.relative_path.split('/'))
        return super().destination_path(request, item)

    def transfer(self, request):
        """
        Copy the files described by the request, creating destination folders as needed.
        Destination files are overwritten by name.

        :param request: A TransferRequest.
        :return: A TransferResult.
        """
        verify_type(request, TransferRequest)
        self.verify_open()

        files = size = 0
        paths = []
        for item in request.iter_items():
            target = self.destination_path(request, item)
            try:
                folder = os.path.dirname(target)
                if folder:
                    if os.path.exists(folder) and not os.path.isdir(folder):
                        raise ValidationError("Destination %s exists and is not a directory." %
                                              folder)
                    os.makedirs(folder, exist_ok=True)
                shutil.copy2(item.local_path, target)
            except FerryException:
                raise
            except PermissionError:
                raise AccessDeniedError("Permission denied writing %s." % target) from None
            except OSError as exc:
                raise TransferError("Failed copying %s after %d file(s): %s" %
                                    (target, files, exc.strerror or exc)) from None
            log.debug("Copied %s to %s (%d bytes).", item.local_path, target, item.size)
            files += 1
            size += item.size
            paths.append(target)

        return TransferResult.succeeded(files, size, paths)
