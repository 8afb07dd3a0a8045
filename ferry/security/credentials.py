"""
Implements the Secret class, for named user/password credentials held by a secret store.
"""


from ..exceptions import verify_type


__all__ = [
    'Secret',
]


class Secret:
    """
    A Secret is a user/password pair, stored under a target name. The password is never shown by
    str() or repr(), and wipe() drops it as soon as its holder is done with it.
    """

    def __init__(self, name, user, password):
        verify_type(name, str, non_empty=True)
        verify_type(user, str, allow_none=True)
        verify_type(password, str, allow_none=True)

        self._name = name
        self._user = user or None
        self._password = password or None

    def __bool__(self):
        return self._password is not None

    @property
    def name(self):
        """The target name the secret is stored under."""
        return self._name

    @property
    def user(self):
        return self._user

    @property
    def password(self):
        return self._password

    @property
    def wiped(self):
        """Whether the password has been dropped."""
        return self._password is None

    def wipe(self):
        """
        Drop the password. Python strings cannot be overwritten in place, so this releases this
        object's reference and leaves the value to the garbage collector.
        """
        self._password = None

    def __enter__(self):
        return self

    # noinspection PyUnusedLocal
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.wipe()
        return False  # Do not suppress exceptions.

    def __str__(self):
        # We hide the password on purpose, to prevent accidentally displaying it.
        return 'secret %s for user %s' % (self._name, self._user)

    def __repr__(self):
        # We hide the password on purpose, to prevent accidentally displaying it.
        return type(self).__name__ + "(" + repr(self._name) + ", " + repr(self._user) + ", '********')"

    def __eq__(self, other):
        if not isinstance(other, Secret):
            return NotImplemented
        return (self._name == other._name and self._user == other._user and
                self._password == other._password)

    def __hash__(self):
        return hash((self._name, self._user))

    def __iter__(self):
        yield self._user
        yield self._password

    def __len__(self):
        return 2

    def __getitem__(self, item):
        return (self._user, self._password)[item]
