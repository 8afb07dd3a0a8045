"""
ferry.sessions.robocopy
=======================

Copies to local or UNC destinations by running robocopy as an external process.

Robocopy's exit code is a bit field. Values below 8 mean the copy succeeded (1: files were
copied, 2: extra files exist at the destination, 4: mismatched files were found). 8 means some
files could not be copied, which is worth another attempt. 16 and above mean robocopy did not run
the copy at all, usually because of a usage error or insufficient rights.
"""


import logging
import ntpath
import os
import subprocess


from ..abc.sessions import Connector, Session
from ..exceptions import AccessDeniedError, TransferError, ValidationError, verify_type
from ..plugins import session_type
from ..transfers import TransferRequest, TransferResult


__all__ = [
    'RobocopyConnector',
    'RobocopySession',
    'build_arguments',
]


log = logging.getLogger(__name__)


COPY_FAILURE_FLAG = 8
FATAL_ERROR_FLAG = 16

# Retries are the orchestrator's job; robocopy must fail fast and report.
BASE_OPTIONS = ('/IS', '/IT', '/R:0', '/W:0', '/NP', '/NJH', '/NJS')


def build_arguments(executable, request):
    """
    Build the robocopy command line for a request.

    :param executable: The robocopy executable.
    :param request: A TransferRequest.
    :return: A list of arguments, starting with the executable.
    """
    if os.path.isdir(request.source):
        return [executable, request.source, request.destination, '/E'] + list(BASE_OPTIONS)
    folder, name = os.path.split(request.source)
    return [executable, folder or '.', request.destination, name] + list(BASE_OPTIONS)


@session_type('robocopy')
class RobocopyConnector(Connector):
    """
    A connector that runs robocopy for each transfer. Like any local copy, it uses the current
    Windows logon and needs no secret.
    """

    @classmethod
    def load_url(cls, url, settings=None, **kwargs):
        """
        Build a connector from a robocopy:// endpoint. The destination path comes from the
        request.

        :param url: The endpoint URL, as split by ferry.abc.sessions.parse_endpoint().
        :return: A new RobocopyConnector.
        """
        if url.netloc or url.path not in ('', '/'):
            raise ValidationError("The destination path belongs in the request, not the endpoint.")
        return cls(**kwargs)

    def __init__(self, executable='robocopy', timeout=None):
        verify_type(executable, str, non_empty=True)
        super().__init__(RobocopySession)
        self._executable = executable
        self._timeout = timeout

    @property
    def executable(self):
        return self._executable

    @property
    def timeout(self):
        """Seconds to let a single robocopy run take, or None for no limit."""
        return self._timeout

    @property
    def requires_secret(self):
        return False

    def __repr__(self):
        return type(self).__name__ + '(' + repr(self._executable) + ')'


class RobocopySession(Session):
    """
    A session whose transfers are robocopy runs.
    """

    path_module = ntpath

    def open(self, secret=None):
        """Open the session. A secret, if given, is ignored."""
        super().open(secret)

    def close(self):
        super().close()

    def transfer(self, request):
        """
        Run robocopy for the request and check its exit code. A destination file name other than
        the source's is applied by renaming after the copy.

        :param request: A TransferRequest.
        :return: A TransferResult.
        """
        verify_type(request, TransferRequest)
        self.verify_open()

        items = list(request.iter_items())
        arguments = build_arguments(self._connector.executable, request)
        log.debug("Running %s", subprocess.list2cmdline(arguments))

        try:
            completed = subprocess.run(
                arguments,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self._connector.timeout,
                universal_newlines=True,
            )
        except FileNotFoundError:
            raise ValidationError("The robocopy executable %r could not be found." %
                                  self._connector.executable) from None
        except subprocess.TimeoutExpired:
            raise TransferError("Robocopy did not finish within %s second(s)." %
                                self._connector.timeout) from None

        for line in (completed.stdout or '').splitlines():
            if line.strip():
                log.debug("robocopy: %s", line.strip())

        code = completed.returncode
        if code >= FATAL_ERROR_FLAG:
            raise ValidationError("Robocopy reported a fatal error (exit code %d)." % code)
        if code & COPY_FAILURE_FLAG:
            raise TransferError("Robocopy could not copy some files (exit code %d)." % code)

        if not os.path.isdir(request.source) and request.destination_name is not None:
            copied = ntpath.join(request.destination, os.path.basename(request.source))
            renamed = ntpath.join(request.destination, request.destination_name)
            if copied != renamed:
                try:
                    os.replace(copied, renamed)
                except PermissionError:
                    raise AccessDeniedError("Permission denied renaming %s to %s." %
                                            (copied, renamed)) from None
                except OSError as exc:
                    raise TransferError("Failed renaming %s to %s: %s" %
                                        (copied, renamed, exc.strerror or exc)) from None

        paths = [self.destination_path(request, item) for item in items]
        return TransferResult.succeeded(len(items), sum(item.size for item in items), paths)
