"""
ferry.repetition
================

Functions for repeating tasks that fail transiently.
"""

import logging
import sys
import time


log = logging.getLogger(__name__)


def backoff_delays(initial_delay=1, backoff=2, max_delay=None):
    """
    Generate the delays between successive attempts: initial_delay, then each delay multiplied by
    backoff, capped at max_delay. The generator is infinite; the caller decides when to stop.

    :param initial_delay: The number of seconds to wait after the first failure.
    :param backoff: The factor by which the delay grows after each failure.
    :param max_delay: The longest delay, in seconds. None means no cap.
    """
    assert initial_delay >= 0
    assert backoff >= 1
    assert max_delay is None or max_delay >= 0

    delay = initial_delay
    while True:
        yield delay if max_delay is None else min(delay, max_delay)
        delay *= backoff


def retry(function, attempts=None, initial_delay=1, backoff=2, max_delay=None, retry_on=Exception,
          handler=None, sleep=time.sleep, args=None, kwargs=None):
    """
    Repeatedly try to call the function until it returns without error, waiting longer after each
    failure. If the function returns without error, pass the return value through to the caller.
    An exception not matching retry_on passes through immediately. Otherwise, once the maximum
    number of attempts is reached, the most recent exception passes through to the caller. The
    function is guaranteed to be called at least once.

    :param function: A callable (function, method, or lambda) which is called repeatedly.
    :param attempts: The maximum number of attempts to make before giving up. None means no limit.
    :param initial_delay: The number of seconds to wait after the first failure.
    :param backoff: The factor by which the delay grows after each failure.
    :param max_delay: The longest wait between attempts, in seconds.
    :param retry_on: The exception type (or tuple of types) that warrants another attempt.
    :param handler: A function that is called after each retryable failure, passing it the attempt
        number and the sys.exc_info() of the exception.
    :param sleep: The function used to wait between attempts.
    :param args: The argument list to pass to the function.
    :param kwargs: The keyword arguments to pass to the function.
    """

    assert callable(function)
    assert handler is None or callable(handler)
    assert attempts is None or attempts >= 1

    args = args or ()
    kwargs = kwargs or {}
    delays = backoff_delays(initial_delay, backoff, max_delay)

    counter = 0
    while True:
        counter += 1

        try:
            return function(*args, **kwargs)
        except retry_on:
            if handler is not None:
                handler(counter, *sys.exc_info())
            if attempts is not None and counter >= attempts:
                raise

        delay = next(delays)
        log.debug("Attempt %s failed; retrying in %s second(s).", counter, delay)
        sleep(delay)
