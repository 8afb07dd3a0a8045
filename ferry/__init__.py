"""
Credential-mediated file transfer for Windows automation.

Files are copied to SFTP servers, network shares and local folders with logins taken from a secret
store, so that no password is ever typed into a script, written to disk or shown in a log.
"""


from . import abc, security, sessions
from . import configurations, exceptions, launcher, logging, orchestration, plugins, repetition, \
    settings, strings, transfers


__version__ = '1.0.0'

__author__ = 'Aaron Hosford'
__author_email__ = 'hosford42@gmail.com'
__description__ = 'Ferry: Credential-Mediated File Transfer'
__long_description__ = __doc__
__license__ = 'MIT (https://opensource.org/licenses/MIT)'


plugins.load_plugins()
