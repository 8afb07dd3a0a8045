"""
Session types. Importing this package registers each connector under the URL scheme it serves.
"""


from ..abc.sessions import parse_endpoint
from ..exceptions import ValidationError
from ..plugins import SESSION_TYPES
from . import local, robocopy, sftp


__all__ = [
    'local',
    'robocopy',
    'sftp',
    'get_connector',
]


def get_connector(endpoint, settings=None):
    """
    Build the connector for an endpoint, choosing the session type by URL scheme.

    :param endpoint: The endpoint string, e.g. sftp://user@host:22.
    :param settings: Optional ferry.settings.TransferSettings passed to the connector.
    :return: A ferry.abc.sessions.Connector instance.
    """
    url = parse_endpoint(endpoint)
    connector_type = SESSION_TYPES.get(url.scheme)
    if connector_type is None:
        raise ValidationError("No session type is registered for endpoint scheme %r." %
                              url.scheme)
    return connector_type.load_url(url, settings=settings)
