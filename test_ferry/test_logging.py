import datetime
import io
import logging
import os
import re
import shutil
import tempfile
import unittest

from ferry.configurations import ConfigManager
from ferry.logging import AuditLogHandler, archive_name, configure_logging, prune_archives
from ferry.security import redaction


class FixedClock:

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestAuditLogHandler(unittest.TestCase):

    def setUp(self):
        self.folder = tempfile.mkdtemp()
        self.path = os.path.join(self.folder, 'ferry.log')
        self.archive = os.path.join(self.folder, 'archive')
        self.clock = FixedClock(datetime.datetime(2026, 10, 17, 9, 30, 0))
        self.handler = AuditLogHandler(self.path, max_bytes=200, clock=self.clock)
        self.logger = logging.getLogger('test_ferry.audit')
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.logger.addHandler(self.handler)

    def tearDown(self):
        self.logger.removeHandler(self.handler)
        self.handler.close()
        shutil.rmtree(self.folder)

    def read_log(self):
        self.handler.flush()
        with open(self.path, encoding='utf-8') as log_file:
            return log_file.read()

    def testLineFormat(self):
        self.logger.info("Transferred %d file(s).", 3)
        line = self.read_log().splitlines()[0]
        match = re.fullmatch(r'(\S+) - Transferred 3 file\(s\)\.', line)
        self.assertIsNotNone(match)
        datetime.datetime.fromisoformat(match.group(1))

    def testSecretsAreRedacted(self):
        with redaction.masking('hunter22'):
            self.logger.warning("Server said %s", 'hunter22 is wrong')
        self.logger.info("connecting with password=swordfish")
        text = self.read_log()
        self.assertNotIn('hunter22', text)
        self.assertNotIn('swordfish', text)
        self.assertIn(redaction.REDACTED, text)

    def testExceptionTextIsRedacted(self):
        try:
            raise ValueError('token=abc123def')
        except ValueError:
            self.logger.exception("Failed")
        self.assertNotIn('abc123def', self.read_log())

    def testRotation(self):
        self.logger.info('x' * 250)
        self.assertFalse(os.path.exists(self.archive))
        self.logger.info('after rotation')

        archived = os.path.join(self.archive, 'ferry_20261017-093000.log')
        self.assertTrue(os.path.isfile(archived))
        with open(archived, encoding='utf-8') as archive_file:
            self.assertIn('x' * 250, archive_file.read())
        text = self.read_log()
        self.assertIn('after rotation', text)
        self.assertNotIn('x' * 250, text)

    def testRotationNameCollision(self):
        self.logger.info('x' * 250)
        self.logger.info('y' * 250)
        self.logger.info('z')
        self.assertEqual(sorted(os.listdir(self.archive)),
                         ['ferry_20261017-093000.log', 'ferry_20261017-093000_1.log'])

    def testRotationPrunes(self):
        os.makedirs(self.archive)
        old = os.path.join(self.archive, 'ferry_20260101-000000.log')
        with open(old, 'w', encoding='utf-8') as old_file:
            old_file.write('old\n')
        self.logger.info('x' * 250)
        self.logger.info('after rotation')
        self.assertFalse(os.path.exists(old))

    def testLoadFromConfig(self):
        manager = ConfigManager({'Audit Log': {
            'Path': self.path,
            'Archive Path': os.path.join(self.folder, 'old'),
            'Max Size': '1 KB',
            'Retention Days': '7',
            'Level': 'warning',
        }})
        handler = manager.load_section('Audit Log', AuditLogHandler)
        try:
            self.assertEqual(handler.max_bytes, 1024)
            self.assertEqual(handler.retention, datetime.timedelta(days=7))
            self.assertEqual(handler.archive_path, os.path.join(self.folder, 'old'))
            self.assertEqual(handler.level, logging.WARNING)
        finally:
            handler.close()


class TestPruneArchives(unittest.TestCase):

    def setUp(self):
        self.folder = tempfile.mkdtemp()
        self.names = [
            'ferry_20260801-120000.log',
            'ferry_20260915-120000.log',
            'ferry_20260915-120000_1.log',
            'ferry_20261016-120000.log',
            'notes.txt',
            'other_20200101-000000.log',
        ]
        for name in self.names:
            with open(os.path.join(self.folder, name), 'w', encoding='utf-8') as file:
                file.write('entry\n')

    def tearDown(self):
        shutil.rmtree(self.folder)

    def testDeletesExactlyTheExpiredArchives(self):
        now = datetime.datetime(2026, 10, 17, 12, 0, 0)
        deleted = prune_archives(self.folder, 'ferry.log', datetime.timedelta(days=30), now)
        self.assertEqual([os.path.basename(path) for path in deleted], [
            'ferry_20260801-120000.log',
            'ferry_20260915-120000.log',
            'ferry_20260915-120000_1.log',
        ])
        self.assertEqual(sorted(os.listdir(self.folder)), [
            'ferry_20261016-120000.log',
            'notes.txt',
            'other_20200101-000000.log',
        ])

    def testMissingFolder(self):
        self.assertEqual(prune_archives(os.path.join(self.folder, 'nope'), 'ferry.log'), [])

    def testArchiveName(self):
        when = datetime.datetime(2026, 10, 17, 9, 5, 7)
        self.assertEqual(archive_name('/var/log/ferry.log', when), 'ferry_20261017-090507.log')


class TestConfigureLogging(unittest.TestCase):

    def testConsoleLevels(self):
        stream = io.StringIO()
        with configure_logging(stream=stream, logger_name='test_ferry.console') as context:
            context.logger.debug('hidden detail')
            context.logger.info('progress')
        self.assertEqual(stream.getvalue(), 'progress\n')

        stream = io.StringIO()
        with configure_logging(verbose=True, stream=stream,
                               logger_name='test_ferry.console') as context:
            context.logger.debug('per-file detail')
        self.assertIn('per-file detail', stream.getvalue())

    def testSilent(self):
        with configure_logging(silent=True, logger_name='test_ferry.console') as context:
            self.assertIsNone(context.console_handler)
            self.assertEqual(context.handlers, [])

    def testConsoleIsRedacted(self):
        stream = io.StringIO()
        with configure_logging(stream=stream, logger_name='test_ferry.console') as context:
            context.logger.info('secret=opensesame')
        self.assertNotIn('opensesame', stream.getvalue())

    def testCloseDetaches(self):
        logger = logging.getLogger('test_ferry.detach')
        context = configure_logging(stream=io.StringIO(), logger_name='test_ferry.detach')
        self.assertEqual(len(logger.handlers), 2)
        context.close()
        self.assertEqual(logger.handlers, [])
