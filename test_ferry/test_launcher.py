import os
import shutil
import tempfile
import unittest
from unittest import mock

from ferry import launcher
from ferry.exceptions import CleanupWarning, SecretNotFoundError, ValidationError
from ferry.security.credentials import Secret
from ferry.security.stores import MemorySecretStore


class TestRenderTemplate(unittest.TestCase):

    def testPlaceholders(self):
        secret = Secret('svcA', 'user1', 'p@ss')
        text = launcher.render_template('host=$target\nuser=$user\npass=${password}\n', secret,
                                        'files.example.com')
        self.assertEqual(text, 'host=files.example.com\nuser=user1\npass=p@ss\n')

    def testUnknownPlaceholder(self):
        with self.assertRaises(ValidationError):
            launcher.render_template('$nonsense', Secret('svcA', 'user1', 'p@ss'))

    def testSubstituteConfigPath(self):
        self.assertEqual(launcher.substitute_config_path(['prog', '-c', '{config}'], '/tmp/x'),
                         ['prog', '-c', '/tmp/x'])
        self.assertEqual(launcher.substitute_config_path(['prog', '--config={config}'], '/tmp/x'),
                         ['prog', '--config=/tmp/x'])
        with self.assertRaises(ValidationError):
            launcher.substitute_config_path(['prog'], '/tmp/x')
        with self.assertRaises(ValidationError):
            launcher.substitute_config_path([], '/tmp/x')


class TestLaunch(unittest.TestCase):

    def setUp(self):
        self.folder = tempfile.mkdtemp()
        self.template = os.path.join(self.folder, 'client.conf')
        with open(self.template, 'w', encoding='utf-8') as template_file:
            template_file.write('user = $user\npassword = $password\n')
        self.store = MemorySecretStore({'svcA': ('user1', 'p@ssw0rd')})
        self.seen = {}

        patcher = mock.patch.object(launcher.subprocess, 'Popen', side_effect=self.fake_popen)
        self.popen = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        shutil.rmtree(self.folder)

    def fake_popen(self, arguments):
        path = arguments[-1]
        self.seen['path'] = path
        with open(path, encoding='utf-8') as config_file:
            self.seen['content'] = config_file.read()
        process = mock.Mock()
        process.wait.return_value = 0
        return process

    def testRendersAndDeletes(self):
        code = launcher.launch(self.store, 'svcA', self.template, ['client', '{config}'])
        self.assertEqual(code, 0)
        self.assertEqual(self.seen['content'], 'user = user1\npassword = p@ssw0rd\n')
        self.assertTrue(self.seen['path'].endswith('.conf'))
        self.assertFalse(os.path.exists(self.seen['path']))

    def testNoWait(self):
        sleep = mock.Mock()
        process = launcher.launch(self.store, 'svcA', self.template, ['client', '{config}'],
                                  wait=False, read_delay=2, sleep=sleep)
        sleep.assert_called_once_with(2)
        process.wait.assert_not_called()
        self.assertFalse(os.path.exists(self.seen['path']))

    def testSecretNeverLogged(self):
        with self.assertLogs('ferry', level='DEBUG') as logs:
            launcher.launch(self.store, 'svcA', self.template, ['client', '{config}'])
        for line in logs.output:
            self.assertNotIn('p@ssw0rd', line)

    def testMissingSecretLeavesNoFile(self):
        created = []
        real_mkstemp = tempfile.mkstemp

        def mkstemp(*args, **kwargs):
            result = real_mkstemp(*args, **kwargs)
            created.append(result[1])
            return result

        with mock.patch.object(launcher.tempfile, 'mkstemp', side_effect=mkstemp):
            with self.assertRaises(SecretNotFoundError):
                launcher.launch(self.store, 'missing', self.template, ['client', '{config}'])
        self.assertEqual(len(created), 1)
        self.assertFalse(os.path.exists(created[0]))
        self.popen.assert_not_called()

    def testProgramNotFound(self):
        self.popen.side_effect = FileNotFoundError()
        with self.assertRaises(ValidationError):
            launcher.launch(self.store, 'svcA', self.template, ['nope', '{config}'])

    def testDeletionFailureIsAWarning(self):
        with mock.patch.object(launcher.os, 'remove', side_effect=PermissionError(13, 'in use')):
            with self.assertWarns(CleanupWarning):
                code = launcher.launch(self.store, 'svcA', self.template,
                                       ['client', '{config}'])
        self.assertEqual(code, 0)
        os.remove(self.seen['path'])

    def testCommandIsCheckedBeforeWriting(self):
        with mock.patch.object(launcher.tempfile, 'mkstemp') as mkstemp:
            with self.assertRaises(ValidationError):
                launcher.launch(self.store, 'svcA', self.template, ['client', '--no-config'])
        mkstemp.assert_not_called()
        self.popen.assert_not_called()
