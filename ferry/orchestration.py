"""
ferry.orchestration
===================

Drives a transfer request from secret lookup through cleanup:

    idle -> secret_lookup -> session_open -> transferring -> cleanup -> done

Any step can end in the failed state instead. A failed secret lookup is final. Opening a session
is retried with exponential backoff while the failure is a network error; an authentication
failure is final. The transfer itself is retried as a whole while it fails with a network error,
reopening the session with a fresh secret lookup if the old one was lost. Cleanup runs exactly once
per request, whatever happened before it.
"""


import logging
import time
import warnings


from .exceptions import CleanupWarning, FerryException, RETRYABLE_ERRORS, ValidationError, \
    verify_callable, verify_type
from .repetition import retry
from .security import redaction
from .security.stores import SecretStore
from .sessions import get_connector
from .settings import TransferSettings
from .transfers import TransferRequest, TransferResult


__all__ = [
    'IDLE',
    'SECRET_LOOKUP',
    'SESSION_OPEN',
    'TRANSFERRING',
    'CLEANUP',
    'DONE',
    'FAILED',
    'STATES',
    'TransferOrchestrator',
]


log = logging.getLogger(__name__)


IDLE = 'idle'
SECRET_LOOKUP = 'secret_lookup'
SESSION_OPEN = 'session_open'
TRANSFERRING = 'transferring'
CLEANUP = 'cleanup'
DONE = 'done'
FAILED = 'failed'

STATES = frozenset([IDLE, SECRET_LOOKUP, SESSION_OPEN, TRANSFERRING, CLEANUP, DONE, FAILED])


class TransferOrchestrator:
    """
    Runs transfer requests against a secret store.

    :param store: The SecretStore secrets are looked up in. May be None if no request will name a
        secret.
    :param settings: A TransferSettings instance. Defaults to TransferSettings().
    :param connector_factory: A callable taking an endpoint string and the settings and returning
        a connector. Defaults to ferry.sessions.get_connector.
    :param sleep: The function used to wait between attempts.
    """

    def __init__(self, store=None, settings=None, connector_factory=None, sleep=time.sleep):
        verify_type(store, SecretStore, allow_none=True)
        verify_type(settings, TransferSettings, allow_none=True)
        verify_callable(connector_factory, allow_none=True)
        verify_callable(sleep)

        self._store = store
        self._settings = settings or TransferSettings()
        self._connector_factory = connector_factory or get_connector
        self._sleep = sleep

        self._history = [IDLE]
        self._open_attempts = 0
        self._transfer_attempts = 0

    @property
    def store(self):
        return self._store

    @property
    def settings(self):
        return self._settings

    @property
    def state(self):
        """The current state."""
        return self._history[-1]

    @property
    def history(self):
        """The states visited by the most recent run, in order."""
        return tuple(self._history)

    def _enter(self, state):
        assert state in STATES
        if self._history[-1] != state:
            log.debug("Transfer state: %s -> %s", self._history[-1], state)
            self._history.append(state)

    def _lookup(self, name):
        self._enter(SECRET_LOOKUP)
        if self._store is None:
            raise ValidationError("No secret store is configured to look up %r in." % name)
        log.debug("Looking up the stored login %r.", name)
        return self._store.lookup(name)

    def _on_open_failure(self, counter, exc_type, exc_value, exc_tb):
        log.warning("Opening a session failed (attempt %d of %d): %s", counter,
                    self._settings.open_attempts, exc_value)

    def _on_transfer_failure(self, counter, exc_type, exc_value, exc_tb):
        log.warning("Transfer failed (attempt %d of %d): %s", counter,
                    self._settings.transfer_attempts, exc_value)

    def _open(self, connector, request):
        # The plaintext secret lives from the lookup until the session is open, and is masked in
        # every log entry written meanwhile.
        secret = None
        if connector.requires_secret:
            if request.secret_name is None:
                raise ValidationError("Endpoint %s requires a secret name." % request.endpoint)
            secret = self._lookup(request.secret_name)

        def attempt():
            self._open_attempts += 1
            return connector.open(secret)

        try:
            with redaction.masking(secret.password if secret else None):
                self._enter(SESSION_OPEN)
                settings = self._settings
                try:
                    return retry(
                        attempt,
                        attempts=settings.open_attempts,
                        initial_delay=settings.initial_delay,
                        backoff=settings.backoff,
                        max_delay=settings.max_delay,
                        retry_on=RETRYABLE_ERRORS,
                        handler=self._on_open_failure,
                        sleep=self._sleep
                    )
                except FerryException as exc:
                    # Redact while the value is still registered.
                    exc.args = (redaction.redact(exc),)
                    raise
        finally:
            if secret is not None:
                secret.wipe()

    def _cleanup(self, session):
        self._enter(CLEANUP)
        if session is None:
            return
        try:
            session.close()
        except Exception as exc:
            message = "Closing the session failed: %s" % redaction.redact(exc)
            log.warning(message)
            warnings.warn(message, CleanupWarning)

    def run(self, request):
        """
        Carry out a transfer request. Failures in the ferry exception taxonomy and operating
        system errors are reported in the result rather than raised; the session is closed either
        way.

        :param request: A TransferRequest.
        :return: A TransferResult carrying the final state and attempt counts.
        """
        verify_type(request, TransferRequest)

        self._history = [IDLE]
        self._open_attempts = 0
        self._transfer_attempts = 0

        log.info("Transferring %s to %s on %s.", request.source, request.destination,
                 request.endpoint)

        session = None
        error = None
        result = None

        def attempt():
            nonlocal session
            self._transfer_attempts += 1
            if session is None or not session.is_open:
                log.info("The session was lost; reopening it.")
                if session is not None:
                    session.close()
                    session = None
                session = self._open(connector, request)
            self._enter(TRANSFERRING)
            return session.transfer(request)

        try:
            request.validate()
            connector = self._connector_factory(request.endpoint, self._settings)
            session = self._open(connector, request)

            settings = self._settings
            result = retry(
                attempt,
                attempts=settings.transfer_attempts,
                initial_delay=settings.initial_delay,
                backoff=settings.backoff,
                max_delay=settings.max_delay,
                retry_on=RETRYABLE_ERRORS,
                handler=self._on_transfer_failure,
                sleep=self._sleep
            )
        except (FerryException, OSError) as exc:
            error = exc
        finally:
            self._cleanup(session)

        if error is not None:
            self._enter(FAILED)
            log.error("Transfer failed: %s", error)
            return TransferResult.failed(error).with_progress(FAILED, self._open_attempts,
                                                              self._transfer_attempts)

        self._enter(DONE)
        log.info("Transferred %d file(s), %d byte(s).", result.files, result.size)
        return result.with_progress(DONE, self._open_attempts, self._transfer_attempts)
