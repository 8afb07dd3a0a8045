"""
Security- and credential-related functionality.

The secret chain, summarized in one sentence:
    The passwords our transfers authenticate with live in a secret store outside the code, are
    read only at the moment a session is opened, are masked in every log line and error message
    while they are held, and are dropped as soon as the session is open.

The default store is Windows Credential Manager, whose generic credentials are protected by the
logged-on user's Windows credentials. Where Credential Manager is not available, a vault file of
Fernet-encrypted passwords can be used instead; its key is derived from a master password that is
supplied through the environment or at a prompt, and never written to disk.
"""


__all__ = [
    'credentials',
    'encryption',
    'redaction',
    'stores',
]
