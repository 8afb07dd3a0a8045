"""
ferry.transfers
===============

Transfer requests and results.

A TransferRequest describes one copy operation: what to send, where to send it, which endpoint
to send it through, and which stored secret authenticates the session. It is immutable once
built. A TransferResult reports the outcome; when the transfer fails, the result carries a
redacted description of the error and nothing else that came from the secret.
"""


import collections
import os


from .exceptions import ValidationError
from .security import redaction


__all__ = [
    'TransferItem',
    'TransferRequest',
    'TransferResult',
]


TransferItem = collections.namedtuple('TransferItem', ['local_path', 'relative_path', 'size'])


def _require(condition, message):
    if not condition:
        raise ValidationError(message)


def _optional_name(value, description):
    if value is None:
        return None
    _require(isinstance(value, str) and value.strip(), "The %s must be a non-empty string." %
             description)
    return value.strip()


def _size_of(path):
    try:
        return os.path.getsize(path)
    except OSError as exc:
        raise ValidationError("Cannot read source file %s: %s" %
                              (path, exc.strerror or exc)) from None


def _walk_error(exc):
    raise ValidationError("Cannot read source folder %s: %s" %
                          (exc.filename, exc.strerror or exc)) from None


class TransferRequest:
    """
    An immutable description of a single transfer.

    :param source: The local file or directory to send.
    :param destination: The destination directory on the far side of the session.
    :param endpoint: The endpoint URL, e.g. sftp://user@host:22, or a bare host[:port] for SFTP.
    :param secret_name: The name of the stored secret used to open the session, if any.
    :param destination_name: The file name to write at the destination. Single-file mode only.
    :param copy_all: Send the whole directory tree under source, preserving relative paths.
    :param silent: Suppress console output for this request.
    :param verbose: Report each file on the console.
    """

    def __init__(self, source, destination, endpoint, secret_name=None, destination_name=None,
                 copy_all=False, silent=False, verbose=False):
        _require(isinstance(source, str) and source.strip(), "A source path is required.")
        _require(isinstance(destination, str) and destination.strip(),
                 "A destination path is required.")
        _require(isinstance(endpoint, str) and endpoint.strip(), "An endpoint is required.")

        secret_name = _optional_name(secret_name, 'secret name')
        destination_name = _optional_name(destination_name, 'destination file name')
        if destination_name is not None:
            _require(not any(sep in destination_name for sep in ('/', '\\')),
                     "The destination file name must not contain a path: %r" % destination_name)
            _require(destination_name not in ('.', '..'),
                     "Invalid destination file name: %r" % destination_name)

        _require(not (silent and verbose), "A request cannot be both silent and verbose.")

        self._source = os.path.normpath(source.strip())
        self._destination = destination.strip()
        self._endpoint = endpoint.strip()
        self._secret_name = secret_name
        self._destination_name = destination_name
        self._copy_all = bool(copy_all)
        self._silent = bool(silent)
        self._verbose = bool(verbose)

    @property
    def source(self):
        """The local file or directory to send."""
        return self._source

    @property
    def destination(self):
        """The destination directory."""
        return self._destination

    @property
    def endpoint(self):
        """The endpoint URL the session is opened against."""
        return self._endpoint

    @property
    def secret_name(self):
        """The name of the stored secret, or None if the session needs none."""
        return self._secret_name

    @property
    def destination_name(self):
        """The file name to write at the destination, or None to keep the source name."""
        return self._destination_name

    @property
    def copy_all(self):
        return self._copy_all

    @property
    def silent(self):
        return self._silent

    @property
    def verbose(self):
        return self._verbose

    def validate(self):
        """
        Check the request against the local file system. Raises ValidationError if the source is
        missing, or if the flags do not suit the kind of source.
        """
        _require(os.path.exists(self._source), "Source path does not exist: %s" % self._source)
        if os.path.isdir(self._source):
            _require(self._copy_all,
                     "Source is a directory; copy-all is required to send it: %s" % self._source)
            _require(self._destination_name is None,
                     "A destination file name only applies to single-file transfers.")
        else:
            _require(os.path.isfile(self._source), "Source is not a regular file: %s" %
                     self._source)

    def iter_items(self):
        """
        Iterate over the files this request sends, in a stable order. Each item's relative path
        uses forward slashes and is relative to the destination root. A source entry that cannot
        be read, such as a dangling link or a file removed mid-walk, raises ValidationError.

        :return: An iterator over TransferItem instances.
        """
        self.validate()

        if not os.path.isdir(self._source):
            name = self._destination_name or os.path.basename(self._source)
            yield TransferItem(self._source, name, _size_of(self._source))
            return

        for root, dirs, files in os.walk(self._source, onerror=_walk_error):
            dirs.sort()
            for name in sorted(files):
                local_path = os.path.join(root, name)
                relative_path = os.path.relpath(local_path, self._source)
                yield TransferItem(
                    local_path,
                    relative_path.replace(os.sep, '/'),
                    _size_of(local_path)
                )

    def __repr__(self):
        args = [repr(self._source), repr(self._destination), repr(self._endpoint)]
        if self._secret_name is not None:
            args.append('secret_name=%r' % self._secret_name)
        if self._destination_name is not None:
            args.append('destination_name=%r' % self._destination_name)
        for flag in ('copy_all', 'silent', 'verbose'):
            if getattr(self, flag):
                args.append(flag + '=True')
        return type(self).__name__ + '(' + ', '.join(args) + ')'

    def _key(self):
        return (self._source, self._destination, self._endpoint, self._secret_name,
                self._destination_name, self._copy_all, self._silent, self._verbose)

    def __eq__(self, other):
        if not isinstance(other, TransferRequest):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())


class TransferResult:
    """
    The outcome of a transfer. Error detail is redacted on the way in, so a result never carries
    secret material.
    """

    @classmethod
    def succeeded(cls, files=0, size=0, paths=()):
        """A successful result for the given files."""
        return cls(True, files=files, size=size, paths=paths)

    @classmethod
    def failed(cls, error, files=0, size=0, paths=()):
        """A failed result describing the given exception or message."""
        return cls(False, files=files, size=size, paths=paths, error=error)

    def __init__(self, success, files=0, size=0, paths=(), error=None, state=None,
                 open_attempts=0, transfer_attempts=0):
        self._success = bool(success)
        self._files = int(files)
        self._size = int(size)
        self._paths = tuple(paths)
        if isinstance(error, BaseException):
            self._error_type = type(error).__name__
            self._error = redaction.redact(str(error)) or self._error_type
        elif error is not None:
            self._error_type = None
            self._error = redaction.redact(str(error))
        else:
            self._error_type = None
            self._error = None
        self._state = state
        self._open_attempts = open_attempts
        self._transfer_attempts = transfer_attempts

    def __bool__(self):
        return self._success

    @property
    def success(self):
        return self._success

    @property
    def files(self):
        """The number of files written."""
        return self._files

    @property
    def size(self):
        """The number of bytes written."""
        return self._size

    @property
    def paths(self):
        """The destination paths written, in transfer order."""
        return self._paths

    @property
    def error(self):
        """The redacted error description, or None on success."""
        return self._error

    @property
    def error_type(self):
        """The name of the exception type that ended the transfer, if any."""
        return self._error_type

    @property
    def state(self):
        """The final orchestration state, when the result came from an orchestrator."""
        return self._state

    @property
    def open_attempts(self):
        return self._open_attempts

    @property
    def transfer_attempts(self):
        return self._transfer_attempts

    def with_progress(self, state, open_attempts, transfer_attempts):
        """
        Return a copy of this result annotated with orchestration progress.

        :param state: The final orchestration state.
        :param open_attempts: How many times a session open was attempted.
        :param transfer_attempts: How many times the transfer was attempted.
        :return: A new TransferResult.
        """
        result = TransferResult(self._success, self._files, self._size, self._paths, None, state,
                                open_attempts, transfer_attempts)
        result._error = self._error
        result._error_type = self._error_type
        return result

    def __repr__(self):
        if self._success:
            return '%s(success=True, files=%d, size=%d)' % (type(self).__name__, self._files,
                                                           self._size)
        return '%s(success=False, error=%r)' % (type(self).__name__, self._error)
