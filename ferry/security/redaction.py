"""
ferry.security.redaction
========================

Masking of secret material before it reaches a log or an error message.

Two mechanisms are applied, in order:
  * Live values: while a secret is in use, its value is registered with a Redactor, and every
    occurrence of it is replaced. Values shorter than three characters are replaced only where
    they stand alone, not inside longer words. Registration is scoped with the masking() context
    manager, so a value is only remembered for as long as its owner holds it.
  * Patterns: assignments such as "password=...", "secret: ...", bearer tokens and credentials
    embedded in URLs are masked whatever their value.
"""


import re
import threading

from contextlib import contextmanager


__all__ = [
    'REDACTED',
    'Redactor',
    'get_redactor',
    'redact',
    'masking',
]


REDACTED = '********'

# Values shorter than this are masked only where they stand alone as a word.
MIN_LITERAL_LENGTH = 3

PATTERNS = (
    # user:password@host in URLs
    re.compile(r'(?P<keep>[a-z][a-z0-9+.\-]*://[^\s:/@]+:)(?P<secret>[^\s@/]+)(?=@)',
               re.IGNORECASE),
    re.compile(r'(?P<keep>Authorization:\s*(?:Bearer|Basic)\s+)(?P<secret>\S+)', re.IGNORECASE),
    re.compile(
        r'''(?P<keep>\b(?:password|passwd|pwd|passphrase|secret|token|api[_-]?key|credential)'''
        r'''["']?\s*[:=]\s*["']?)(?P<secret>[^\s"'&,;)]+)''',
        re.IGNORECASE
    ),
)


class Redactor:
    """
    Replaces registered secret values and secret-shaped assignments with a fixed mask.
    """

    def __init__(self, mask=REDACTED):
        self._mask = mask
        self._values = {}
        self._lock = threading.RLock()

    @property
    def mask(self):
        """The replacement text."""
        return self._mask

    def register(self, value):
        """
        Start masking the given value. Registrations are counted, so nested registration of the
        same value is released only by the matching number of unregister() calls.

        :param value: The secret value.
        """
        if not value or not isinstance(value, str):
            return
        with self._lock:
            self._values[value] = self._values.get(value, 0) + 1

    def unregister(self, value):
        """
        Stop masking the given value.

        :param value: The secret value.
        """
        with self._lock:
            count = self._values.get(value)
            if count is None:
                return
            if count <= 1:
                del self._values[value]
            else:
                self._values[value] = count - 1

    @contextmanager
    def masking(self, value):
        """
        Mask the value for the duration of a with block.

            with redactor.masking(secret.password):
                ...
        """
        self.register(value)
        try:
            yield self
        finally:
            self.unregister(value)

    @property
    def active(self):
        """The number of distinct values currently masked."""
        with self._lock:
            return len(self._values)

    def redact(self, text):
        """
        Return the text with all secret material masked.

        :param text: The text to redact. Non-string values are converted with str().
        :return: The redacted text.
        """
        if text is None:
            return None
        if not isinstance(text, str):
            text = str(text)

        with self._lock:
            # Longest first, so a value containing another is masked whole.
            values = sorted(self._values, key=len, reverse=True)
        for value in values:
            if value not in text:
                continue
            if len(value) >= MIN_LITERAL_LENGTH:
                text = text.replace(value, self._mask)
            else:
                text = re.sub(r'(?<!\w)' + re.escape(value) + r'(?!\w)',
                              lambda match: self._mask, text)

        for pattern in PATTERNS:
            text = pattern.sub(lambda match: match.group('keep') + self._mask, text)

        return text


_default_redactor = Redactor()


def get_redactor():
    """The process-wide redactor shared by the audit log and error reporting."""
    return _default_redactor


def redact(text):
    """Redact the text with the process-wide redactor."""
    return _default_redactor.redact(text)


def masking(value):
    """Mask the value with the process-wide redactor for the duration of a with block."""
    return _default_redactor.masking(value)
