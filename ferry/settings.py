"""
ferry.settings
==============

Explicit transfer settings, passed to the orchestrator and the sessions it opens.
"""


from .abc.configurations import Configurable
from .configurations import ConfigManager
from .exceptions import OperationNotSupportedError, ValidationError, verify_type
from .plugins import config_loader


__all__ = [
    'TransferSettings',
    'HOST_KEY_POLICIES',
]


HOST_KEY_POLICIES = frozenset({'reject', 'warn', 'auto_add'})


@config_loader
class TransferSettings(Configurable):
    """
    Retry, timeout and presentation settings for a transfer. Instances are immutable; use
    replace() to derive a variant.

    :param open_attempts: How many times to try opening a session before giving up.
    :param transfer_attempts: How many times to try the whole transfer before giving up.
    :param initial_delay: Seconds to wait after the first failure.
    :param backoff: Factor by which the wait grows after each failure.
    :param max_delay: The longest wait between attempts, in seconds.
    :param timeout: Seconds before a blocking network call is abandoned.
    :param host_key_policy: What to do with an SSH host key that is not in known_hosts: reject,
        warn, or auto_add.
    :param known_hosts: An extra known_hosts file to trust, besides the user's own.
    :param silent: No console output.
    :param verbose: Per-file console output.
    """

    @classmethod
    def load_config_value(cls, manager, value, *args, **kwargs):
        raise OperationNotSupportedError("Transfer settings are loaded from a config section.")

    @classmethod
    def load_config_section(cls, manager, section, *args, **kwargs):
        """
        Load a new instance from a config section on behalf of a config loader.

        :param manager: A ferry.configurations.ConfigManager instance.
        :param section: The name of the section being loaded.
        :return: An instance of this type.
        """
        verify_type(manager, ConfigManager)
        verify_type(section, str, non_empty=True)

        return cls(
            *args,
            open_attempts=manager.load_option(section, 'Open Attempts', 'int', 3),
            transfer_attempts=manager.load_option(section, 'Transfer Attempts', 'int', 3),
            initial_delay=manager.load_option(section, 'Initial Delay', 'number', 1),
            backoff=manager.load_option(section, 'Backoff', 'number', 2),
            max_delay=manager.load_option(section, 'Max Delay', 'number', 30),
            timeout=manager.load_option(section, 'Timeout', 'number', 30),
            host_key_policy=manager.load_option(section, 'Host Key Policy', str, 'reject'),
            known_hosts=manager.load_option(section, 'Known Hosts', str, None),
            silent=manager.load_option(section, 'Silent', 'bool', False),
            verbose=manager.load_option(section, 'Verbose', 'bool', False),
            **kwargs
        )

    def __init__(self, open_attempts=3, transfer_attempts=3, initial_delay=1, backoff=2,
                 max_delay=30, timeout=30, host_key_policy='reject', known_hosts=None,
                 silent=False, verbose=False):
        for name, value, minimum in (('open attempts', open_attempts, 1),
                                     ('transfer attempts', transfer_attempts, 1),
                                     ('initial delay', initial_delay, 0),
                                     ('backoff', backoff, 1),
                                     ('max delay', max_delay, 0)):
            if not isinstance(value, (int, float)) or value < minimum:
                raise ValidationError("The %s must be a number no less than %s." % (name, minimum))
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            raise ValidationError("The timeout must be a positive number of seconds.")
        host_key_policy = host_key_policy.strip().lower().replace('-', '_')
        if host_key_policy not in HOST_KEY_POLICIES:
            raise ValidationError("Unknown host key policy: %r" % host_key_policy)
        verify_type(known_hosts, str, allow_none=True)

        self._open_attempts = int(open_attempts)
        self._transfer_attempts = int(transfer_attempts)
        self._initial_delay = initial_delay
        self._backoff = backoff
        self._max_delay = max_delay
        self._timeout = timeout
        self._host_key_policy = host_key_policy
        self._known_hosts = known_hosts or None
        self._silent = bool(silent)
        self._verbose = bool(verbose) and not self._silent

    @property
    def open_attempts(self):
        return self._open_attempts

    @property
    def transfer_attempts(self):
        return self._transfer_attempts

    @property
    def initial_delay(self):
        return self._initial_delay

    @property
    def backoff(self):
        return self._backoff

    @property
    def max_delay(self):
        return self._max_delay

    @property
    def timeout(self):
        return self._timeout

    @property
    def host_key_policy(self):
        return self._host_key_policy

    @property
    def known_hosts(self):
        return self._known_hosts

    @property
    def silent(self):
        return self._silent

    @property
    def verbose(self):
        return self._verbose

    def _as_dict(self):
        return {
            'open_attempts': self._open_attempts,
            'transfer_attempts': self._transfer_attempts,
            'initial_delay': self._initial_delay,
            'backoff': self._backoff,
            'max_delay': self._max_delay,
            'timeout': self._timeout,
            'host_key_policy': self._host_key_policy,
            'known_hosts': self._known_hosts,
            'silent': self._silent,
            'verbose': self._verbose,
        }

    def replace(self, **changes):
        """
        Return a copy of these settings with the given values changed.
        """
        values = self._as_dict()
        values.update(changes)
        return type(self)(**values)

    def __eq__(self, other):
        if not isinstance(other, TransferSettings):
            return NotImplemented
        return self._as_dict() == other._as_dict()

    def __hash__(self):
        return hash(tuple(sorted(self._as_dict().items())))

    def __repr__(self):
        return type(self).__name__ + '(' + ', '.join(
            '%s=%r' % item for item in sorted(self._as_dict().items())
        ) + ')'
