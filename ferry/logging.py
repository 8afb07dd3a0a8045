"""
ferry.logging
=============

The audit log: an append-only, redacted, size-rotated log file with a retention window for its
archives, plus the console output that accompanies it.

Each entry is one UTF-8 line:
    <ISO-8601 timestamp> - <message>
"""


import datetime
import logging
import os
import re
import sys


from .abc.configurations import Configurable
from .configurations import ConfigManager
from .exceptions import OperationNotSupportedError, verify_type
from .plugins import config_loader
from .security import redaction


__all__ = [
    'AuditFormatter',
    'RedactingFilter',
    'AuditLogHandler',
    'LogContext',
    'archive_name',
    'prune_archives',
    'configure_logging',
]


DEFAULT_FORMAT = '%(asctime)s - %(message)s'
DEFAULT_MAX_BYTES = 1024 * 1024
DEFAULT_RETENTION = datetime.timedelta(days=30)
ARCHIVE_TIME_FORMAT = '%Y%m%d-%H%M%S'


class RedactingFilter(logging.Filter):
    """
    Replaces each record's message with its redacted, fully interpolated form. Attached to a
    handler, it runs before the handler's formatter sees the record.
    """

    def __init__(self, redactor=None):
        super().__init__()
        self._redactor = redactor or redaction.get_redactor()

    def filter(self, record):
        record.msg = self._redactor.redact(record.getMessage())
        record.args = None
        return True


@config_loader
class AuditFormatter(Configurable, logging.Formatter):
    """
    Formats records as "<ISO-8601 timestamp> - <message>", and redacts the result, including any
    exception text.
    """

    @classmethod
    def load_config_value(cls, manager, value, *args, **kwargs):
        """
        Load a class instance from the value of a config option.

        :param manager: A ConfigManager instance.
        :param value: The format string.
        :return: A new instance of this class.
        """
        verify_type(value, str, non_empty=True)
        return cls(*args, fmt=value, **kwargs)

    @classmethod
    def load_config_section(cls, manager, section, *args, **kwargs):
        raise OperationNotSupportedError("Log formats are loaded from an option value.")

    def __init__(self, fmt=DEFAULT_FORMAT, redactor=None):
        Configurable.__init__(self)
        logging.Formatter.__init__(self, fmt)
        self._redactor = redactor or redaction.get_redactor()

    def formatTime(self, record, datefmt=None):
        stamp = datetime.datetime.fromtimestamp(record.created).astimezone()
        if datefmt:
            return stamp.strftime(datefmt)
        return stamp.isoformat(timespec='milliseconds')

    def formatException(self, ei):
        return self._redactor.redact(super().formatException(ei))

    def format(self, record):
        return self._redactor.redact(super().format(record))


def archive_name(base_filename, when):
    """
    The archive file name for a log rotated at the given time.

    :param base_filename: The active log file's name.
    :param when: A datetime.datetime.
    :return: The archive file name, e.g. ferry_20261017-093000.log.
    """
    stem, extension = os.path.splitext(os.path.basename(base_filename))
    return '%s_%s%s' % (stem, when.strftime(ARCHIVE_TIME_FORMAT), extension)


def _archive_pattern(base_filename):
    stem, extension = os.path.splitext(os.path.basename(base_filename))
    return re.compile(r'^%s_(\d{8}-\d{6})(?:_\d+)?%s$' % (re.escape(stem), re.escape(extension)))


def prune_archives(archive_path, base_filename, retention=DEFAULT_RETENTION, now=None):
    """
    Delete archived logs whose rotation time is older than the retention window. Only files named
    the way rotation names them are considered; anything else in the folder is left alone.

    :param archive_path: The archive folder.
    :param base_filename: The active log file's name.
    :param retention: A datetime.timedelta.
    :param now: The current time. Defaults to datetime.datetime.now().
    :return: A sorted list of the paths deleted.
    """
    verify_type(retention, datetime.timedelta)
    if not os.path.isdir(archive_path):
        return []

    cutoff = (now or datetime.datetime.now()) - retention
    pattern = _archive_pattern(base_filename)

    deleted = []
    for name in sorted(os.listdir(archive_path)):
        match = pattern.match(name)
        if not match:
            continue
        try:
            rotated = datetime.datetime.strptime(match.group(1), ARCHIVE_TIME_FORMAT)
        except ValueError:
            continue
        if rotated < cutoff:
            path = os.path.join(archive_path, name)
            os.remove(path)
            deleted.append(path)
    return deleted


@config_loader
class AuditLogHandler(Configurable, logging.FileHandler):
    """
    A file handler that appends redacted entries, moves the active log into an archive folder once
    it grows past a size threshold, and prunes archives older than the retention window each time
    it rotates.
    """

    @classmethod
    def load_config_value(cls, manager, value, *args, **kwargs):
        """
        Load a class instance from the value of a config option, which is the log file path.

        :param manager: A ConfigManager instance.
        :param value: The string value of the option.
        :return: A new instance of this class.
        """
        verify_type(value, str, non_empty=True)
        return cls(*args, filename=value, **kwargs)

    @classmethod
    def load_config_section(cls, manager, section, *args, **kwargs):
        """
        Load a class instance from a config section.

        :param manager: A ConfigManager instance.
        :param section: The name of the section.
        :return: A new instance of this class.
        """
        verify_type(manager, ConfigManager)
        verify_type(section, str, non_empty=True)

        kwargs.setdefault('filename', manager.load_option(section, 'Path', str))
        kwargs.setdefault('archive_path', manager.load_option(section, 'Archive Path', str, None))
        kwargs.setdefault('max_bytes', manager.load_option(section, 'Max Size', 'byte_size',
                                                           DEFAULT_MAX_BYTES))
        if 'retention' not in kwargs:
            days = manager.load_option(section, 'Retention Days', 'int', DEFAULT_RETENTION.days)
            kwargs['retention'] = datetime.timedelta(days=days)
        kwargs.setdefault('encoding', manager.load_option(section, 'Encoding', str, 'utf-8'))
        level = manager.load_option(section, 'Level', 'log_level', logging.INFO)

        result = cls(*args, **kwargs)
        result.setLevel(level)
        return result

    def __init__(self, filename, archive_path=None, max_bytes=DEFAULT_MAX_BYTES,
                 retention=DEFAULT_RETENTION, encoding='utf-8', clock=None):
        verify_type(filename, str, non_empty=True)
        verify_type(archive_path, str, non_empty=True, allow_none=True)
        verify_type(max_bytes, int)
        verify_type(retention, datetime.timedelta)

        filename = os.path.abspath(os.path.expandvars(os.path.expanduser(filename)))
        if archive_path is None:
            archive_path = os.path.join(os.path.dirname(filename), 'archive')
        else:
            archive_path = os.path.abspath(os.path.expandvars(os.path.expanduser(archive_path)))
        os.makedirs(os.path.dirname(filename), exist_ok=True)

        Configurable.__init__(self)
        logging.FileHandler.__init__(self, filename, mode='a', encoding=encoding, delay=True)

        self._archive_path = archive_path
        self._max_bytes = max_bytes
        self._retention = retention
        self._clock = clock or datetime.datetime.now

        self.addFilter(RedactingFilter())
        self.setFormatter(AuditFormatter())

    @property
    def archive_path(self):
        """The folder rotated logs are moved into."""
        return self._archive_path

    @property
    def max_bytes(self):
        """The size past which the active log is rotated."""
        return self._max_bytes

    @property
    def retention(self):
        """How long archived logs are kept."""
        return self._retention

    def should_rotate(self):
        """Whether the active log has grown past the size threshold."""
        if self.stream is not None:
            self.stream.flush()
        return os.path.isfile(self.baseFilename) and \
            os.path.getsize(self.baseFilename) > self._max_bytes

    def rotate(self):
        """
        Move the active log into the archive folder under a timestamped name, and start a fresh,
        empty log in its place.

        :return: The path of the archived log.
        """
        if self.stream is not None:
            self.stream.close()
            self.stream = None

        os.makedirs(self._archive_path, exist_ok=True)
        name = archive_name(self.baseFilename, self._clock())
        target = os.path.join(self._archive_path, name)
        stem, extension = os.path.splitext(name)
        counter = 0
        while os.path.exists(target):
            counter += 1
            target = os.path.join(self._archive_path, '%s_%d%s' % (stem, counter, extension))

        os.replace(self.baseFilename, target)
        self.stream = self._open()
        return target

    def prune(self, now=None):
        """
        Delete archived logs older than the retention window.

        :param now: The current time. Defaults to the handler's clock.
        :return: The paths deleted.
        """
        return prune_archives(self._archive_path, self.baseFilename, self._retention,
                              now or self._clock())

    def emit(self, record):
        self.acquire()
        try:
            if self.should_rotate():
                self.rotate()
                self.prune()
        except OSError:
            self.handleError(record)
        finally:
            self.release()
        logging.FileHandler.emit(self, record)


class LogContext:
    """
    The handlers attached by configure_logging(). Closing the context detaches and closes them and
    restores the logger's previous level and propagation.
    """

    def __init__(self, logger, audit_handler, console_handler):
        self._logger = logger
        self._audit_handler = audit_handler
        self._console_handler = console_handler
        self._previous = (logger.level, logger.propagate)
        # Keeps the last-resort handler quiet when nothing else is attached.
        self._null_handler = logging.NullHandler()

        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        logger.addHandler(self._null_handler)
        for handler in self.handlers:
            logger.addHandler(handler)

    @property
    def logger(self):
        return self._logger

    @property
    def audit_handler(self):
        return self._audit_handler

    @property
    def console_handler(self):
        return self._console_handler

    @property
    def handlers(self):
        return [handler for handler in (self._audit_handler, self._console_handler)
                if handler is not None]

    def close(self):
        """Detach and close the handlers."""
        for handler in self.handlers:
            self._logger.removeHandler(handler)
            handler.close()
        self._logger.removeHandler(self._null_handler)
        self._logger.setLevel(self._previous[0])
        self._logger.propagate = self._previous[1]
        self._audit_handler = self._console_handler = None

    def __enter__(self):
        return self

    # noinspection PyUnusedLocal
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Do not suppress exceptions.


def configure_logging(audit_handler=None, silent=False, verbose=False, stream=None,
                      logger_name='ferry'):
    """
    Attach the audit log and console output to the package logger. Console output is suppressed
    when silent, includes per-file detail when verbose, and is otherwise limited to progress and
    problems.

    :param audit_handler: An AuditLogHandler, or None for console output only.
    :param silent: No console output.
    :param verbose: Debug-level console output.
    :param stream: The console stream. Defaults to sys.stderr.
    :param logger_name: The logger to attach to.
    :return: A LogContext; close it to detach the handlers.
    """
    verify_type(audit_handler, logging.Handler, allow_none=True)

    console_handler = None
    if not silent:
        console_handler = logging.StreamHandler(stream or sys.stderr)
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        console_handler.addFilter(RedactingFilter())
        console_handler.setFormatter(logging.Formatter('%(message)s'))

    return LogContext(logging.getLogger(logger_name), audit_handler, console_handler)
