import os
import shutil
import tempfile
import unittest
from unittest import mock

from ferry import orchestration
from ferry.abc.sessions import Connector, Session
from ferry.exceptions import AuthError, CleanupWarning, NetworkError, TransferError
from ferry.orchestration import TransferOrchestrator
from ferry.security import redaction
from ferry.security.stores import MemorySecretStore
from ferry.settings import TransferSettings
from ferry.transfers import TransferRequest, TransferResult


PASSWORD = 'hunter22-secret-value'


class FakeConnector(Connector):

    @classmethod
    def load_url(cls, url, **kwargs):
        return cls()

    def __init__(self, open_errors=(), transfer_errors=(), needs_secret=True, close_error=None):
        super().__init__(FakeSession)
        self.open_errors = list(open_errors)
        self.transfer_errors = list(transfer_errors)
        self.needs_secret = needs_secret
        self.close_error = close_error
        self.secrets = []
        self.sessions = []

    @property
    def requires_secret(self):
        return self.needs_secret


class FakeSession(Session):

    def __init__(self, connector):
        super().__init__(connector)
        self.close_count = 0
        self.transfers = 0
        connector.sessions.append(self)

    def open(self, secret=None):
        self.connector.secrets.append(secret)
        if secret is not None:
            # The password must still be readable while the session opens.
            assert secret.password == PASSWORD
        if self.connector.open_errors:
            raise self.connector.open_errors.pop(0)
        super().open(secret)

    def close(self):
        if self._is_open:
            self.close_count += 1
            if self.connector.close_error is not None:
                super().close()
                raise self.connector.close_error
        super().close()

    def transfer(self, request):
        self.verify_open()
        self.transfers += 1
        if self.connector.transfer_errors:
            error, lost = self.connector.transfer_errors.pop(0)
            if lost:
                self._is_open = False
            raise error
        return TransferResult.succeeded(1, 6, ['/upload/report.csv'])


class TestTransferOrchestrator(unittest.TestCase):

    def setUp(self):
        self.folder = tempfile.mkdtemp()
        self.file_path = os.path.join(self.folder, 'report.csv')
        with open(self.file_path, 'wb') as file:
            file.write(b'a,b,c\n')
        self.request = TransferRequest(self.file_path, '/upload', 'files.example.com',
                                       secret_name='svcA')
        self.store = MemorySecretStore({'svcA': ('user1', PASSWORD)})
        self.store.lookup = mock.Mock(wraps=self.store.lookup)
        self.sleep = mock.Mock()
        self.settings = TransferSettings(initial_delay=1, backoff=2)

    def tearDown(self):
        shutil.rmtree(self.folder)

    def run_with(self, connector, request=None, store=NotImplemented):
        factory = mock.Mock(return_value=connector)
        orchestrator = TransferOrchestrator(self.store if store is NotImplemented else store,
                                            self.settings, connector_factory=factory,
                                            sleep=self.sleep)
        with self.assertLogs('ferry', level='DEBUG') as logs:
            result = orchestrator.run(request or self.request)
        for line in logs.output:
            self.assertNotIn(PASSWORD, line)
        return orchestrator, result, factory

    def testSuccess(self):
        connector = FakeConnector()
        orchestrator, result, factory = self.run_with(connector)
        self.assertTrue(result)
        self.assertEqual(result.state, orchestration.DONE)
        self.assertEqual(result.files, 1)
        self.assertEqual(orchestrator.history, (
            orchestration.IDLE,
            orchestration.SECRET_LOOKUP,
            orchestration.SESSION_OPEN,
            orchestration.TRANSFERRING,
            orchestration.CLEANUP,
            orchestration.DONE,
        ))
        factory.assert_called_once_with('files.example.com', self.settings)
        self.assertEqual(connector.sessions[0].close_count, 1)

    def testSecretIsWipedAfterOpen(self):
        connector = FakeConnector()
        self.run_with(connector)
        self.assertEqual(len(connector.secrets), 1)
        self.assertTrue(connector.secrets[0].wiped)
        self.assertEqual(redaction.get_redactor().active, 0)

    def testSecretNotFoundOpensNoSession(self):
        connector = FakeConnector()
        orchestrator, result, factory = self.run_with(connector, store=MemorySecretStore())
        self.assertFalse(result)
        self.assertEqual(result.state, orchestration.FAILED)
        self.assertEqual(result.error_type, 'SecretNotFoundError')
        self.assertEqual(connector.sessions, [])
        self.assertEqual(result.open_attempts, 0)
        self.assertEqual(orchestrator.history.count(orchestration.CLEANUP), 1)

    def testNetworkErrorOnOpenIsRetried(self):
        connector = FakeConnector(open_errors=[NetworkError('down'), NetworkError('down')])
        orchestrator, result, factory = self.run_with(connector)
        self.assertTrue(result)
        self.assertEqual(result.open_attempts, 3)
        self.assertEqual(self.sleep.call_args_list, [mock.call(1), mock.call(2)])
        self.store.lookup.assert_called_once_with('svcA')

    def testOpenGivesUp(self):
        connector = FakeConnector(open_errors=[NetworkError('down')] * 3)
        orchestrator, result, factory = self.run_with(connector)
        self.assertFalse(result)
        self.assertEqual(result.error_type, 'NetworkError')
        self.assertEqual(result.open_attempts, 3)
        self.assertEqual(result.transfer_attempts, 0)

    def testAuthErrorIsFatal(self):
        connector = FakeConnector(open_errors=[AuthError('Authentication failed.')])
        orchestrator, result, factory = self.run_with(connector)
        self.assertFalse(result)
        self.assertEqual(result.error_type, 'AuthError')
        self.assertEqual(result.open_attempts, 1)
        self.sleep.assert_not_called()
        self.assertEqual(orchestrator.history.count(orchestration.CLEANUP), 1)

    def testOpenErrorIsRedacted(self):
        connector = FakeConnector(open_errors=[AuthError('server echoed %s back' % PASSWORD)])
        orchestrator, result, factory = self.run_with(connector)
        self.assertNotIn(PASSWORD, result.error)

    def testTransferErrorIsRetriedOnSameSession(self):
        connector = FakeConnector(transfer_errors=[(TransferError('stalled'), False)])
        orchestrator, result, factory = self.run_with(connector)
        self.assertTrue(result)
        self.assertEqual(result.transfer_attempts, 2)
        self.assertEqual(len(connector.sessions), 1)
        self.assertEqual(connector.sessions[0].transfers, 2)

    def testLostSessionIsReopenedWithFreshLookup(self):
        connector = FakeConnector(transfer_errors=[(TransferError('connection reset'), True)])
        orchestrator, result, factory = self.run_with(connector)
        self.assertTrue(result)
        self.assertEqual(self.store.lookup.call_count, 2)
        self.assertEqual(len(connector.sessions), 2)
        self.assertEqual(result.open_attempts, 2)
        self.assertTrue(all(secret.wiped for secret in connector.secrets))
        self.assertEqual(connector.sessions[1].close_count, 1)
        self.assertEqual(orchestrator.history.count(orchestration.CLEANUP), 1)

    def testTransferGivesUp(self):
        connector = FakeConnector(transfer_errors=[(TransferError('stalled'), False)] * 3)
        orchestrator, result, factory = self.run_with(connector)
        self.assertFalse(result)
        self.assertEqual(result.error_type, 'TransferError')
        self.assertEqual(result.transfer_attempts, 3)
        self.assertEqual(connector.sessions[0].close_count, 1)

    def testCleanupFailureIsAWarning(self):
        connector = FakeConnector(close_error=OSError('socket already gone'))
        with self.assertWarns(CleanupWarning):
            orchestrator, result, factory = self.run_with(connector)
        self.assertTrue(result)
        self.assertEqual(result.state, orchestration.DONE)

    def testNoSecretNeeded(self):
        connector = FakeConnector(needs_secret=False)
        request = TransferRequest(self.file_path, '/upload', 'file://')
        orchestrator, result, factory = self.run_with(connector, request, store=None)
        self.assertTrue(result)
        self.assertNotIn(orchestration.SECRET_LOOKUP, orchestrator.history)
        self.assertEqual(connector.secrets, [None])

    def testSecretNameRequired(self):
        connector = FakeConnector()
        request = TransferRequest(self.file_path, '/upload', 'files.example.com')
        orchestrator, result, factory = self.run_with(connector, request)
        self.assertFalse(result)
        self.assertEqual(result.error_type, 'ValidationError')
        self.assertEqual(connector.sessions, [])

    def testInvalidRequestFailsBeforeConnecting(self):
        request = TransferRequest(os.path.join(self.folder, 'missing.csv'), '/upload',
                                  'files.example.com', secret_name='svcA')
        orchestrator, result, factory = self.run_with(FakeConnector(), request)
        self.assertFalse(result)
        self.assertEqual(result.error_type, 'ValidationError')
        factory.assert_not_called()
        self.store.lookup.assert_not_called()

    def testOperatingSystemErrorEndsInFailure(self):
        connector = FakeConnector(transfer_errors=[(OSError(5, 'Input/output error'), False)])
        orchestrator, result, factory = self.run_with(connector)
        self.assertFalse(result)
        self.assertEqual(result.state, orchestration.FAILED)
        self.assertEqual(result.error_type, 'OSError')
        self.assertEqual(result.transfer_attempts, 1)
        self.assertEqual(connector.sessions[0].close_count, 1)


class TestLocalTransferFailures(unittest.TestCase):

    def setUp(self):
        self.folder = tempfile.mkdtemp()
        self.source = os.path.join(self.folder, 'source')
        os.makedirs(self.source)
        with open(os.path.join(self.source, 'report.csv'), 'wb') as file:
            file.write(b'a,b,c\n')
        try:
            os.symlink(os.path.join(self.folder, 'nowhere.txt'),
                       os.path.join(self.source, 'gone.txt'))
        except (OSError, NotImplementedError):
            shutil.rmtree(self.folder)
            self.skipTest("Symbolic links are not available.")

    def tearDown(self):
        shutil.rmtree(self.folder)

    def testUnreadableSourceEntryFailsTheTransfer(self):
        request = TransferRequest(self.source, os.path.join(self.folder, 'destination'),
                                  'file://', copy_all=True)
        orchestrator = TransferOrchestrator(sleep=mock.Mock())
        with self.assertLogs('ferry', level='ERROR') as logs:
            result = orchestrator.run(request)
        self.assertFalse(result)
        self.assertEqual(result.state, orchestration.FAILED)
        self.assertEqual(result.error_type, 'ValidationError')
        self.assertIn('gone.txt', result.error)
        self.assertEqual(orchestrator.history[-2:], (orchestration.CLEANUP, orchestration.FAILED))
        self.assertTrue(any('Transfer failed' in line for line in logs.output))
