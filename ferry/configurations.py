"""
Supports the loading of settings, secret stores and other compound objects directly from a
configuration file.
"""


import configparser
import os
import threading


from .exceptions import ConfigParameterNotFoundError, ConfigSectionNotFoundError, \
    ConfigurationError, verify_type
from .plugins import CONFIG_LOADERS


__all__ = [
    "get_default_config_search_dirs",
    "iter_config_search_paths",
    "load_config",
    "ConfigManager",
    "get_ferry_config_manager",
]


# Underscored because it should not be accessed directly.
_ferry_config_manager = None
_GLOBALS_LOCK = threading.RLock()


CONFIG_FILE_NAME = 'ferry'

CONFIG_EXTENSIONS = (
    '.ini',
    '.cfg',
    '.conf',
)


def get_default_config_search_dirs():
    """
    Return a list containing the default configuration file search directories. No checking is
    performed, so the directories returned may not exist.

    :return: A list of directories where the config file may be located, in order of descending
        precedence.
    """
    base_paths = [
        '.',
        os.environ.get('FERRY_CONFIG'),
        '~',
        '~/.config/ferry',
        '/etc/ferry',
        os.path.dirname(__file__),
    ]
    return [base_path for base_path in base_paths if base_path]


def iter_config_search_paths(file_name_base=CONFIG_FILE_NAME, dirs=None, extensions=None):
    """
    Iterate over the search paths for a configuration file. Only paths that actually exist are
    included.

    :param file_name_base: The name of the config file, minus the extension.
    :param dirs: The directories in which to search.
    :param extensions: The file name extensions to check for.
    :return: An iterator over the config files in order of descending precedence.
    """
    if dirs is None:
        dirs = get_default_config_search_dirs()
    if extensions is None:
        extensions = CONFIG_EXTENSIONS
    covered = set()
    for base_path in dirs:
        base_path = os.path.expandvars(os.path.expanduser(base_path))
        base_path = os.path.normpath(os.path.normcase(os.path.abspath(base_path)))
        if os.path.isfile(base_path):
            # FERRY_CONFIG may name the file itself.
            candidates = [base_path]
        elif os.path.isdir(base_path):
            candidates = [os.path.join(base_path, file_name_base + extension)
                          for extension in extensions]
        else:
            continue
        for full_path in candidates:
            if full_path not in covered:
                covered.add(full_path)
                if os.path.isfile(full_path):
                    yield full_path


def load_config(file_name_base=CONFIG_FILE_NAME, dirs=None, extensions=None, error=False):
    """
    Load one or more configuration files in order of precedence. Files of lower precedence are
    read first, so that values in files of higher precedence override them.

    :param file_name_base: The name of the config file(s), minus the extension.
    :param dirs: The directories in which to search.
    :param extensions: The file name extensions to check for.
    :param error: Whether to raise exceptions when the parser cannot read a config file.
    :return: A configparser.ConfigParser instance containing the loaded parameters.
    """
    config = configparser.ConfigParser(interpolation=None)
    for path in reversed(list(iter_config_search_paths(file_name_base, dirs, extensions))):
        try:
            config.read(path, encoding='utf-8')
        except configparser.Error:
            if error:
                raise
    return config


class ConfigManager:
    """
    A ConfigManager manages the loading of objects directly from a configuration file.

    Options are loaded with a loader, which can be a plain function of the option string, the name
    of a registered config loader (see ferry.plugins.config_loader), or a Configurable subclass. A
    section is loaded the same way, with its Type option naming the loader when none is given.
    Loaded objects are cached, so loading the same option or section twice with the same loader
    returns the same object.
    """

    def __init__(self, config, loaders=None):
        if isinstance(config, str):
            if os.path.isfile(config):
                path = config
                config = configparser.ConfigParser(interpolation=None)
                with open(path, encoding='utf-8') as config_file:
                    config.read_file(config_file)
            else:
                config = load_config(file_name_base=config)
        elif isinstance(config, dict):
            content = config
            config = configparser.ConfigParser(interpolation=None)
            config.read_dict(content)
        verify_type(config, configparser.ConfigParser)

        self._config = config
        self._loaders = CONFIG_LOADERS if loaders is None else loaders
        self._loaded_instances = {}

        self._config_lock = threading.RLock()  # Lock for modifying/accessing config object
        self._instance_lock = threading.RLock()  # Lock for modifying/accessing loaded instances

    def get_loader(self, name):
        """
        Lookup a loader by name.

        :param name: The name of the loader.
        :return: The loader.
        """
        verify_type(name, str, non_empty=True)
        if name not in self._loaders:
            raise ConfigurationError("No config loader is registered as %r." % name)
        return self._loaders[name]

    def has_section(self, section):
        """
        Determine whether the given section exists.

        :param section: The name of the section.
        :return: Whether or not the section exists.
        """
        verify_type(section, str, non_empty=True)
        if section == 'DEFAULT':
            return True
        with self._config_lock:
            return self._config.has_section(section)

    def has_option(self, section, option):
        """
        Determine whether the given option exists.

        :param section: The name of the section where the option must appear.
        :param option: The name of the option.
        :return: Whether or not the option exists.
        """
        verify_type(section, str, non_empty=True)
        verify_type(option, str, non_empty=True)
        with self._config_lock:
            return self._config.has_option(section, option)

    def get_section(self, section, default=NotImplemented):
        """
        Return a dictionary with the contents of the section. Modifying the dictionary does NOT
        modify the underlying configuration.

        :param section: The name of the section.
        :param default: The default value if the section does not exist.
        :return: A dictionary containing the section's contents, or the default.
        """
        verify_type(section, str, non_empty=True)
        with self._config_lock:
            if section == 'DEFAULT' or self._config.has_section(section):
                return dict(self._config[section])
        if default is NotImplemented:
            raise ConfigSectionNotFoundError(section)
        return default

    def set_option(self, section, option, value):
        """
        Set the value of an option, creating the section if necessary.

        :param section: The name of the section.
        :param option: The name of the option.
        :param value: The value of the option.
        """
        verify_type(section, str, non_empty=True)
        verify_type(option, str, non_empty=True)
        verify_type(value, str)
        with self._config_lock:
            if section != 'DEFAULT' and not self._config.has_section(section):
                self._config.add_section(section)
            self._config.set(section, option, value)
        with self._instance_lock:
            self._loaded_instances.clear()

    def get_option(self, section, option, default=NotImplemented):
        """
        Return the raw string value of the option.

        :param section: The section name.
        :param option: The option name.
        :param default: The default value to return if no such option exists.
        :return: The string value of the option, or the default if it doesn't exist.
        """
        verify_type(section, str, non_empty=True)
        verify_type(option, str, non_empty=True)
        with self._config_lock:
            if self._config.has_option(section, option):
                return self._config[section][option]
            has_section = self.has_section(section)
        if default is not NotImplemented:
            return default
        if has_section:
            raise ConfigParameterNotFoundError(option)
        raise ConfigSectionNotFoundError(section)

    def _resolve_loader(self, loader):
        if loader is None:
            return str
        if isinstance(loader, str):
            return self.get_loader(loader)
        return loader

    def load_value(self, value, loader=None):
        """
        Load an arbitrary string value as an object, as load_option() would, without looking it up
        in a section first.

        :param value: The string value to load.
        :param loader: The (optional) loader used to load the string value.
        :return: The loaded object.
        """
        verify_type(value, str)
        loader = self._resolve_loader(loader)
        if hasattr(loader, 'load_config_value'):
            return loader.load_config_value(self, value)
        return loader(value)

    def load_option(self, section, option, loader=None, default=NotImplemented):
        """
        Load an option from a specific section as an object. If no loader is provided, the value of
        the option is returned as an ordinary string (str).

        :param section: The name of the section where the option appears.
        :param option: The name of the option to load.
        :param loader: The (optional) loader used to load the option.
        :param default: The default value to use if the section or option does not exist. If no
            default value is specified, an exception is raised if the section or option does not
            exist. (Using NotImplemented for this instead of None enables the use of None as a
            default value.)
        :return: The loaded object, or the default value.
        """
        try:
            content = self.get_option(section, option)
        except KeyError:
            if default is NotImplemented:
                raise
            return default

        loader = self._resolve_loader(loader)
        cache_key = (section, option, loader)

        with self._instance_lock:
            if cache_key in self._loaded_instances:
                return self._loaded_instances[cache_key]

            try:
                if hasattr(loader, 'load_config_value'):
                    result = loader.load_config_value(self, content)
                else:
                    result = loader(content)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError("Invalid value for option %r in section [%s]: %s" %
                                         (option, section, exc)) from exc

            self._loaded_instances[cache_key] = result

        return result

    def load_section(self, section, loader=None, default=NotImplemented):
        """
        Load a section as a single object. If a loader is provided, it will always be used. If no
        loader is provided, but a Type option appears in the section, the value of the Type option
        names the loader. If no loader is indicated by either of these mechanisms, the section is
        loaded as an ordinary dictionary (dict).

        :param section: The name of the section to load.
        :param loader: The (optional) loader used to load the section.
        :param default: The default value to use if the section does not exist.
        :return: The loaded object.
        """
        try:
            content = self.get_section(section)
        except KeyError:
            if default is NotImplemented:
                raise
            return default

        if loader is None:
            loader = content.get('type', dict)
        if isinstance(loader, str):
            loader = self.get_loader(loader)

        cache_key = (section, None, loader)

        with self._instance_lock:
            if cache_key in self._loaded_instances:
                return self._loaded_instances[cache_key]

            if hasattr(loader, 'load_config_section'):
                result = loader.load_config_section(self, section)
            else:
                result = loader(content)

            self._loaded_instances[cache_key] = result

        return result


def get_ferry_config_manager(error=False, refresh=False):
    """
    Get the configuration manager built from the ferry config files found on the search path.

    :param error: Whether to raise exceptions when the parser cannot read a config file.
    :param refresh: Whether to reload the configuration information from disk.
    :return: A ConfigManager instance.
    """
    with _GLOBALS_LOCK:
        global _ferry_config_manager
        if refresh or _ferry_config_manager is None:
            _ferry_config_manager = ConfigManager(load_config(error=error))
        assert isinstance(_ferry_config_manager, ConfigManager)
        return _ferry_config_manager
