"""
ferry.plugins
=============

Infrastructure for dealing with plugins.
"""


import warnings

from collections.abc import Mapping
from importlib.metadata import entry_points


from .exceptions import PluginExistsError, PluginNotFoundError, InvalidPluginError, verify_type


__all__ = [
    'PluginGroup',
    'CONFIG_LOADERS',
    'SESSION_TYPES',
    'load_plugins',
    'config_loader',
    'session_type',
]


class PluginGroup(Mapping):
    """
    A PluginGroup is a collection of plugins registered under the same entry point group name. It
    supports both install-time and run-time registration of plugins, case-insensitive lookup by
    name, and plugin type-checking.
    """

    def __init__(self, name, value_type=None):
        verify_type(name, str, non_empty=True)
        if value_type is not None:
            verify_type(value_type, type)

        self._name = name
        self._value_type = value_type
        self._original_names = {}
        self._registry = {}

    @property
    def name(self):
        """The entry point group name."""
        return self._name

    def load(self, warn=True):
        """
        Load any pre-registered plugins.

        :param warn: Whether to warn if a registered plugin could not be loaded.
        :return: None
        """
        for entry_point in entry_points(group=self._name):
            try:
                self.register(entry_point.name, entry_point.load())
            except Exception as exc:
                if not warn:
                    raise
                warnings.warn(str(exc))

    def register(self, name, value):
        """
        Register a new plugin.

        :param name: The name of the plugin.
        :param value: The plugin.
        :return: None
        """
        verify_type(name, str, non_empty=True)
        if name.lower() in self._registry and self._registry[name.lower()] is not value:
            raise PluginExistsError("Another plugin by this name has already been registered: %s" %
                                    name)
        if self._value_type is not None and not (isinstance(value, type) and
                                                 issubclass(value, self._value_type)):
            raise InvalidPluginError("Plugin %s is not a/an %s." %
                                     (name, self._value_type.__name__))
        self._original_names[name.lower()] = name
        self._registry[name.lower()] = value

    def __getitem__(self, name):
        if not isinstance(name, str):
            raise TypeError(name)
        if name.lower() not in self._registry:
            raise PluginNotFoundError(name)
        return self._registry[name.lower()]

    def __iter__(self):
        return iter(self._original_names.values())

    def __contains__(self, name):
        if not isinstance(name, str):
            return False
        return name.lower() in self._registry

    def __len__(self):
        return len(self._registry)

    def get(self, name, default=None):
        """
        Get the plugin by name.

        :param name: The name of the plugin.
        :param default: The default value if the plugin does not exist.
        :return: The plugin, or the default.
        """
        verify_type(name, str, non_empty=True)
        return self._registry.get(name.lower(), default)

    def plugin(self, name=NotImplemented, value=NotImplemented):
        """
        A decorator for in-line registration of plugins.

        Registering a plugin function under its own name to group PLUGIN_GROUP:
            @PLUGIN_GROUP.plugin
            def aptly_named_plugin_function(arg1, arg2):
                ...

        Registering a plugin function to a different name to group PLUGIN_GROUP:
            @PLUGIN_GROUP.plugin('BetterPluginName')
            def less_aptly_named_plugin_function(arg1, arg2):
                ...

        :param value: The value to be registered as a plugin.
        :param name: The name to register the plugin under.
        :return: The value, unchanged, after registration, or a parameter-free plugin decorator.
        """

        # Used bare (@group.plugin), the decorated object arrives as the name.
        if name is not NotImplemented and not isinstance(name, str) and value is NotImplemented:
            name, value = NotImplemented, name

        if name is NotImplemented:
            name = value.__name__

        verify_type(name, str, non_empty=True)

        if value is NotImplemented:
            def registrar(obj):
                """
                A parameter-free decorator for in-line registration of plugins.

                :param obj: The value to be registered as a plugin.
                :return: The value, unchanged, after registration.
                """
                self.register(name, obj)
                return obj

            return registrar

        self.register(name, value)

        return value


CONFIG_LOADERS = PluginGroup('ferry.config_loader')
SESSION_TYPES = PluginGroup('ferry.session_type')


def load_plugins(warn=True):
    """
    Load the plugins other packages have registered with ferry through their entry points.

    There are two plugin groups:
      * Config Loaders ('ferry.config_loader'): functions or ferry.abc.configurations.Configurable
        subclasses, usable by name wherever a ConfigManager accepts a loader. Secret stores are
        registered here, so a config section can select one with its Type option.
      * Session Types ('ferry.session_type'): ferry.abc.sessions.Connector subclasses, keyed by
        the URL scheme of the endpoints they serve.
    """
    CONFIG_LOADERS.load(warn)
    SESSION_TYPES.load(warn)


def config_loader(name=NotImplemented, value=NotImplemented):
    """
    A decorator for in-line registration of config loaders.

    Registering a config loader function under its own name:
        @config_loader
        def aptly_named_config_loader(string):
            ...

    Registering a config loader class under a different name:
        @config_loader('better_name')
        class LessAptlyNamedConfigLoader(ferry.abc.configurations.Configurable):
            ...

    :param name: The name to register the plugin under.
    :param value: The value to register as a plugin.
    :return: The value, unchanged, after registration, or a parameter-free plugin decorator.
    """
    return CONFIG_LOADERS.plugin(name, value)


def session_type(scheme):
    """
    A decorator for in-line registration of connector classes under a URL scheme.

        @session_type('sftp')
        class SFTPConnector(Connector):
            ...

    :param scheme: The URL scheme the connector serves.
    :return: A parameter-free plugin decorator.
    """
    verify_type(scheme, str, non_empty=True)
    return SESSION_TYPES.plugin(scheme)
