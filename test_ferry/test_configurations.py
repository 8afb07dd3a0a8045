import logging
import os
import shutil
import tempfile
import unittest

from ferry.abc.configurations import Configurable
from ferry.configurations import ConfigManager, iter_config_search_paths, load_config
from ferry.exceptions import ConfigParameterNotFoundError, ConfigSectionNotFoundError, \
    ConfigurationError, ValidationError
from ferry.plugins import PluginGroup
from ferry.settings import TransferSettings
from ferry.strings import parse_bool, parse_byte_size, parse_int, parse_log_level, parse_number


class TestStrings(unittest.TestCase):

    def testParseBool(self):
        self.assertTrue(parse_bool('yes'))
        self.assertTrue(parse_bool(' On '))
        self.assertFalse(parse_bool('0'))
        self.assertEqual(parse_bool('', default=None), None)
        with self.assertRaises(ValueError):
            parse_bool('maybe')

    def testParseNumbers(self):
        self.assertEqual(parse_int('42'), 42)
        self.assertEqual(parse_number('1.5'), 1.5)
        with self.assertRaises(ValueError):
            parse_int('1.5')
        with self.assertRaises(ValueError):
            parse_number('True')

    def testParseByteSize(self):
        self.assertEqual(parse_byte_size('512'), 512)
        self.assertEqual(parse_byte_size('1 KB'), 1024)
        self.assertEqual(parse_byte_size('10MB'), 10 * 1024 ** 2)
        self.assertEqual(parse_byte_size('1.5 k'), 1536)
        with self.assertRaises(ValueError):
            parse_byte_size('ten bytes')

    def testParseLogLevel(self):
        self.assertEqual(parse_log_level('info'), logging.INFO)
        self.assertEqual(parse_log_level('15'), 15)
        with self.assertRaises(ValueError):
            parse_log_level('chatty')


class Widget(Configurable):

    @classmethod
    def load_config_value(cls, manager, value, *args, **kwargs):
        return cls(value)

    @classmethod
    def load_config_section(cls, manager, section, *args, **kwargs):
        return cls(manager.load_option(section, 'Name', str))

    def __init__(self, name):
        super().__init__()
        self.name = name


class TestConfigManager(unittest.TestCase):

    def setUp(self):
        self.manager = ConfigManager({
            'Transfer': {
                'Open Attempts': '5',
                'Initial Delay': '0.5',
                'Host Key Policy': 'auto-add',
                'Silent': 'yes',
            },
            'Widget': {
                'Type': 'widget',
                'Name': 'left',
            },
            'Broken': {
                'Count': 'many',
            },
        })

    def testGetOption(self):
        self.assertEqual(self.manager.get_option('Transfer', 'open attempts'), '5')
        self.assertEqual(self.manager.get_option('Transfer', 'Missing', None), None)
        with self.assertRaises(ConfigParameterNotFoundError):
            self.manager.get_option('Transfer', 'Missing')
        with self.assertRaises(ConfigSectionNotFoundError):
            self.manager.get_option('Nowhere', 'Missing')

    def testLoadOptionWithNamedLoader(self):
        self.assertEqual(self.manager.load_option('Transfer', 'Open Attempts', 'int'), 5)
        self.assertEqual(self.manager.load_option('Transfer', 'Missing', 'int', 7), 7)

    def testInvalidValueIsConfigurationError(self):
        with self.assertRaises(ConfigurationError):
            self.manager.load_option('Broken', 'Count', 'int')

    def testUnknownLoader(self):
        with self.assertRaises(ConfigurationError):
            self.manager.load_option('Broken', 'Count', 'no_such_loader')

    def testLoadedOptionsAreCached(self):
        first = self.manager.load_option('Widget', 'Name', Widget)
        self.assertIs(self.manager.load_option('Widget', 'Name', Widget), first)
        self.manager.set_option('Widget', 'Name', 'right')
        second = self.manager.load_option('Widget', 'Name', Widget)
        self.assertEqual(second.name, 'right')

    def testSectionTypeSelectsLoader(self):
        loaders = PluginGroup('test.config_loader')
        loaders.register('widget', Widget)
        manager = ConfigManager({'Widget': {'Type': 'widget', 'Name': 'left'}}, loaders=loaders)
        widget = manager.load_section('Widget')
        self.assertIsInstance(widget, Widget)
        self.assertEqual(widget.name, 'left')

    def testSectionWithoutTypeIsDict(self):
        self.assertEqual(self.manager.load_section('Broken'), {'count': 'many'})
        self.assertIsNone(self.manager.load_section('Nowhere', default=None))

    def testLoadTransferSettings(self):
        settings = self.manager.load_section('Transfer', TransferSettings)
        self.assertEqual(settings.open_attempts, 5)
        self.assertEqual(settings.transfer_attempts, 3)
        self.assertEqual(settings.initial_delay, 0.5)
        self.assertEqual(settings.host_key_policy, 'auto_add')
        self.assertTrue(settings.silent)


class TestTransferSettings(unittest.TestCase):

    def testSilentOverridesVerbose(self):
        settings = TransferSettings(silent=True, verbose=True)
        self.assertTrue(settings.silent)
        self.assertFalse(settings.verbose)

    def testReplace(self):
        settings = TransferSettings()
        changed = settings.replace(open_attempts=1)
        self.assertEqual(changed.open_attempts, 1)
        self.assertEqual(settings.open_attempts, 3)
        self.assertNotEqual(settings, changed)
        self.assertEqual(settings, TransferSettings())

    def testValidation(self):
        with self.assertRaises(ValidationError):
            TransferSettings(open_attempts=0)
        with self.assertRaises(ValidationError):
            TransferSettings(backoff=0.5)
        with self.assertRaises(ValidationError):
            TransferSettings(host_key_policy='trust_everyone')


class TestConfigSearch(unittest.TestCase):

    def setUp(self):
        self.high = tempfile.mkdtemp()
        self.low = tempfile.mkdtemp()
        with open(os.path.join(self.high, 'ferry.ini'), 'w', encoding='utf-8') as file:
            file.write('[Transfer]\nTimeout = 5\n')
        with open(os.path.join(self.low, 'ferry.ini'), 'w', encoding='utf-8') as file:
            file.write('[Transfer]\nTimeout = 60\nBackoff = 3\n')

    def tearDown(self):
        shutil.rmtree(self.high)
        shutil.rmtree(self.low)

    def testSearchOrder(self):
        paths = list(iter_config_search_paths(dirs=[self.high, self.low]))
        self.assertEqual(len(paths), 2)
        self.assertTrue(paths[0].startswith(os.path.normcase(os.path.abspath(self.high))))

    def testHigherPrecedenceWins(self):
        config = load_config(dirs=[self.high, self.low])
        self.assertEqual(config['Transfer']['Timeout'], '5')
        self.assertEqual(config['Transfer']['Backoff'], '3')

    def testConfigFileNamedDirectly(self):
        path = os.path.join(self.low, 'ferry.ini')
        self.assertEqual(list(iter_config_search_paths(dirs=[path])),
                         [os.path.normpath(os.path.normcase(os.path.abspath(path)))])
