"""
ferry.security.stores
=====================

Secret stores: named user/password lookups against a facility outside application code.

Every store implements the same contract:
    lookup(name) -> Secret
raising SecretNotFoundError when nothing is stored under the name and AccessDeniedError when the
caller may not read it. Stores never log the values they return.
"""


import base64
import configparser
import getpass
import logging
import os
import tempfile

from abc import ABCMeta, abstractmethod


from ..abc.configurations import Configurable
from ..configurations import ConfigManager, get_ferry_config_manager
from ..exceptions import AccessDeniedError, ConfigurationError, DecryptionError, \
    OperationNotSupportedError, SecretNotFoundError, SecurityError, ValidationError, verify_type
from ..plugins import config_loader
from . import encryption
from .credentials import Secret


__all__ = [
    'SecretStore',
    'MemorySecretStore',
    'CredentialManagerStore',
    'VaultSecretStore',
    'get_secret_store',
]


log = logging.getLogger(__name__)


class SecretStore(Configurable, metaclass=ABCMeta):
    """
    Abstract base class for secret stores.
    """

    @classmethod
    def load_config_value(cls, manager, value, *args, **kwargs):
        """
        Load a new instance from a config option on behalf of a config loader.

        :param manager: A ferry.configurations.ConfigManager instance.
        :param value: The string value of the option.
        :return: An instance of this type.
        """
        raise OperationNotSupportedError("%s cannot be loaded from a single option value." %
                                         cls.__name__)

    @abstractmethod
    def lookup(self, name):
        """
        Look up the secret stored under the given name.

        :param name: The target name of the secret.
        :return: A Secret instance.
        """
        raise NotImplementedError()

    def __contains__(self, name):
        try:
            secret = self.lookup(name)
        except SecretNotFoundError:
            return False
        secret.wipe()
        return True


@config_loader('memory')
class MemorySecretStore(SecretStore):
    """
    A secret store backed by a mapping of name -> (user, password). Handy for tests and for callers
    that obtain secrets some other way.
    """

    @classmethod
    def load_config_section(cls, manager, section, *args, **kwargs):
        """
        Secrets are never read from plaintext config files, so a memory store loaded from config
        starts out empty.
        """
        verify_type(manager, ConfigManager)
        verify_type(section, str, non_empty=True)
        return cls(*args, **kwargs)

    def __init__(self, secrets=None):
        self._secrets = {}
        for name, (user, password) in dict(secrets or {}).items():
            self.store(name, user, password)

    def store(self, name, user, password):
        """
        Store a secret under the given name, replacing any previous one.

        :param name: The target name.
        :param user: The user name.
        :param password: The password.
        """
        verify_type(name, str, non_empty=True)
        verify_type(user, str, allow_none=True)
        verify_type(password, str, allow_none=True)
        self._secrets[name] = (user, password)

    def remove(self, name):
        """
        Remove the secret stored under the given name.

        :param name: The target name.
        """
        if self._secrets.pop(name, None) is None:
            raise SecretNotFoundError("No secret is stored under the name %r." % name)

    def names(self):
        """
        Return the set of names secrets are stored under.
        """
        return set(self._secrets)

    def lookup(self, name):
        verify_type(name, str, non_empty=True)
        log.debug("Looking up secret %r in memory.", name)
        try:
            user, password = self._secrets[name]
        except KeyError:
            raise SecretNotFoundError("No secret is stored under the name %r." % name) from None
        return Secret(name, user, password)


# Win32 error codes returned by CredRead.
ERROR_ACCESS_DENIED = 5
ERROR_NOT_FOUND = 1168


@config_loader('credential_manager')
class CredentialManagerStore(SecretStore):
    """
    A secret store backed by generic credentials in Windows Credential Manager. Credentials are
    provisioned out of band, e.g. with cmdkey /generic:<target> /user:<user> /pass, or through the
    Credential Manager control panel.
    """

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

        prefix = manager.load_option(section, 'Prefix', str, '')

        return cls(*args, prefix=prefix, **kwargs)

    def __init__(self, prefix=''):
        verify_type(prefix, str)

        # pywin32 is only available on Windows, so it is imported when a store is actually built.
        try:
            import pywintypes
            import win32cred
        except ImportError:
            raise ConfigurationError("The credential_manager secret store requires pywin32, "
                                     "which is only available on Windows.") from None

        self._prefix = prefix
        self._win32cred = win32cred
        self._win32_error = pywintypes.error

    @property
    def prefix(self):
        """The prefix prepended to every target name."""
        return self._prefix

    def lookup(self, name):
        verify_type(name, str, non_empty=True)
        target = self._prefix + name
        log.debug("Looking up secret %r in Credential Manager.", target)

        try:
            credential = self._win32cred.CredRead(
                TargetName=target,
                Type=self._win32cred.CRED_TYPE_GENERIC
            )
        except self._win32_error as exc:
            if exc.winerror == ERROR_NOT_FOUND:
                raise SecretNotFoundError("No credential is stored under the name %r." %
                                          target) from None
            if exc.winerror == ERROR_ACCESS_DENIED:
                raise AccessDeniedError("Access to the credential %r was denied." %
                                        target) from None
            raise SecurityError("Credential Manager lookup of %r failed with error %s." %
                                (target, exc.winerror)) from None

        blob = credential.get('CredentialBlob')
        if isinstance(blob, bytes):
            # Generic credentials written by cmdkey and the control panel are UTF-16.
            password = blob.decode('utf-16-le')
        else:
            password = blob
        del blob

        return Secret(name, credential.get('UserName'), password)


DEFAULT_MASTER_PASSWORD_VARIABLE = 'FERRY_MASTER_PASSWORD'


def prompt_master_password():
    """
    Ask for the vault master password on the console.

    :return: The password entered.
    """
    return getpass.getpass('Enter the vault master password: ')


@config_loader('vault')
class VaultSecretStore(SecretStore):
    """
    A secret store backed by an INI file of Fernet-encrypted passwords. The encryption key is
    derived with PBKDF2 from a master password and the vault's own random salt. The master password
    is obtained when it is needed: from an environment variable if it is set, and otherwise from
    the prompt function.

    File layout: the key derivation salt in the DEFAULT section, then one section per secret:

        [DEFAULT]
        salt = <base64 salt>
        iterations = 480000

        [svcA]
        user = user1
        password = <Fernet token>
    """

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

        path = manager.load_option(section, 'Path', str)
        variable = manager.load_option(section, 'Master Password Variable', str,
                                       DEFAULT_MASTER_PASSWORD_VARIABLE)

        return cls(*args, path=path, variable=variable, **kwargs)

    def __init__(self, path, variable=DEFAULT_MASTER_PASSWORD_VARIABLE, prompt=None):
        verify_type(path, str, non_empty=True)
        verify_type(variable, str, allow_none=True)

        self._path = os.path.abspath(os.path.expandvars(os.path.expanduser(path)))
        self._variable = variable
        self._prompt = prompt or prompt_master_password

    @property
    def path(self):
        """The path of the vault file."""
        return self._path

    def _get_master_password(self):
        if self._variable and os.environ.get(self._variable):
            return os.environ[self._variable]
        password = self._prompt()
        if not password:
            raise AccessDeniedError("No vault master password was provided.")
        return password

    def _get_key(self, vault, create=False):
        # One key derivation salt per vault file, kept in its DEFAULT section.
        defaults = vault.defaults()
        if 'salt' not in defaults:
            if not create:
                raise SecurityError("The vault %s has no key salt." % self._path)
            vault.set(vault.default_section, 'salt',
                      base64.b64encode(encryption.new_salt()).decode('ascii'))
            vault.set(vault.default_section, 'iterations', str(encryption.KDF_ITERATIONS))
        try:
            salt = base64.b64decode(defaults['salt'], validate=True)
            iterations = int(defaults.get('iterations', encryption.KDF_ITERATIONS))
        except ValueError:
            raise SecurityError("The vault %s has a malformed key salt." % self._path) from None
        return encryption.get_encryption_key(self._get_master_password(), salt, iterations)

    def _read(self):
        vault = configparser.ConfigParser(interpolation=None)
        try:
            with open(self._path, encoding='utf-8') as vault_file:
                vault.read_file(vault_file)
        except FileNotFoundError:
            pass
        except PermissionError:
            raise AccessDeniedError("Access to the vault %s was denied." % self._path) from None
        return vault

    def _write(self, vault):
        folder = os.path.dirname(self._path)
        os.makedirs(folder, exist_ok=True)

        # Write to a sibling file and swap it in, so a failed write never truncates the vault.
        handle, temp_path = tempfile.mkstemp(prefix='.vault-', dir=folder)
        try:
            with os.fdopen(handle, 'w', encoding='utf-8') as vault_file:
                vault.write(vault_file)
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, self._path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def names(self):
        """
        Return the set of names secrets are stored under.
        """
        return set(self._read().sections())

    def store(self, name, user, password):
        """
        Encrypt and store a secret under the given name, replacing any previous one.

        :param name: The target name.
        :param user: The user name.
        :param password: The password.
        """
        verify_type(name, str, non_empty=True)
        verify_type(user, str, allow_none=True)
        verify_type(password, str, non_empty=True)
        if any(char in name for char in '[]\r\n'):
            raise ValidationError("Invalid secret name: %r" % name)

        vault = self._read()
        token = encryption.encrypt(password, self._get_key(vault, create=True))
        del password

        if not vault.has_section(name):
            vault.add_section(name)
        vault.set(name, 'user', user or '')
        vault.set(name, 'password', encryption.from_bytes(token))
        self._write(vault)
        log.info("Stored secret %r in vault %s.", name, self._path)

    def remove(self, name):
        """
        Remove the secret stored under the given name.

        :param name: The target name.
        """
        vault = self._read()
        if not vault.remove_section(name):
            raise SecretNotFoundError("No secret is stored under the name %r." % name)
        self._write(vault)
        log.info("Removed secret %r from vault %s.", name, self._path)

    def lookup(self, name):
        verify_type(name, str, non_empty=True)
        log.debug("Looking up secret %r in vault %s.", name, self._path)

        vault = self._read()
        if not vault.has_option(name, 'password'):
            raise SecretNotFoundError("No secret is stored under the name %r." % name)

        try:
            password = encryption.from_bytes(
                encryption.decrypt(vault.get(name, 'password'), self._get_key(vault))
            )
        except DecryptionError:
            raise AccessDeniedError("The vault master password does not unlock %r." %
                                    name) from None

        return Secret(name, vault.get(name, 'user', fallback=None), password)


def get_secret_store(manager=None, section='Secrets'):
    """
    Load the configured secret store.

    :param manager: The ConfigManager to load from. Defaults to the ferry config manager.
    :param section: The config section describing the store.
    :return: A SecretStore instance.
    """
    if manager is None:
        manager = get_ferry_config_manager()
    verify_type(manager, ConfigManager)
    store = manager.load_section(section)
    verify_type(store, SecretStore)
    return store
