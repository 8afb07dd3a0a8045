"""
ferry.launcher
==============

Launch a program that reads its login from a config file. The secret is rendered into a private
temporary copy of a config template, the program is started with that file's path, and the file
is deleted again as soon as the program has read it.

Templates use string.Template placeholders:

    $user       The secret's user name.
    $password   The secret's password.
    $target     The optional target passed to launch(), e.g. a host name.
"""


import logging
import os
import string
import subprocess
import tempfile
import time
import warnings


from .exceptions import CleanupWarning, ValidationError, verify_type
from .security import redaction
from .security.stores import SecretStore


__all__ = [
    'CONFIG_PLACEHOLDER',
    'render_template',
    'verify_command',
    'substitute_config_path',
    'launch',
]


log = logging.getLogger(__name__)


CONFIG_PLACEHOLDER = '{config}'
DEFAULT_READ_DELAY = 5


def render_template(template, secret, target=None):
    """
    Fill a config template in with a secret.

    :param template: The template text.
    :param secret: A ferry.security.credentials.Secret.
    :param target: The value for $target, if the template uses it.
    :return: The rendered text.
    """
    verify_type(template, str)
    try:
        return string.Template(template).substitute(
            user=secret.user or '',
            password=secret.password or '',
            target=target or ''
        )
    except KeyError as exc:
        raise ValidationError("Unknown template placeholder: $%s" % exc.args[0]) from None
    except ValueError as exc:
        raise ValidationError("Invalid config template: %s" % exc) from None


def verify_command(command):
    """
    Check that a command line names a program and passes {config} to it. Raises
    ValidationError if not.

    :param command: The command line, as a sequence of arguments.
    """
    if not command:
        raise ValidationError("No command was given to launch.")
    if not any(CONFIG_PLACEHOLDER in argument for argument in command):
        raise ValidationError("The command must pass %s to the program." % CONFIG_PLACEHOLDER)


def substitute_config_path(command, path):
    """
    Replace {config} in each command argument with the given path.

    :param command: The command line, as a sequence of arguments.
    :param path: The config file path.
    :return: A new list of arguments.
    """
    verify_command(command)
    return [argument.replace(CONFIG_PLACEHOLDER, path) for argument in command]


def _delete(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        message = "Could not delete the temporary config file %s: %s" % (path, exc.strerror or exc)
        log.warning(message)
        warnings.warn(message, CleanupWarning)
    else:
        log.debug("Deleted temporary config file %s.", path)


def launch(store, secret_name, template, command, target=None, wait=True,
           read_delay=DEFAULT_READ_DELAY, sleep=time.sleep):
    """
    Render a config template with a stored secret and launch a program that reads it.

    :param store: The SecretStore to look the secret up in.
    :param secret_name: The name of the secret.
    :param template: The path of the config template. The temporary file keeps its extension.
    :param command: The command line, as a sequence of arguments. {config} is replaced with the
        temporary config file's path.
    :param target: The value for $target in the template.
    :param wait: Whether to wait for the program to exit. If not, the temporary file is deleted
        after read_delay seconds while the program keeps running.
    :param read_delay: Seconds to give a program that is not waited on to read its config.
    :param sleep: The function used to wait for read_delay.
    :return: The program's exit code if waiting, or else its subprocess.Popen object.
    """
    verify_type(store, SecretStore)
    verify_type(secret_name, str, non_empty=True)
    verify_type(template, str, non_empty=True)

    try:
        with open(template, encoding='utf-8') as template_file:
            template_text = template_file.read()
    except OSError as exc:
        raise ValidationError("Could not read config template %s: %s" %
                              (template, exc.strerror or exc)) from None

    command = list(command)
    verify_command(command)

    handle, path = tempfile.mkstemp(suffix=os.path.splitext(template)[-1], prefix='ferry_')
    try:
        with open(handle, 'w', encoding='utf-8') as config_file:
            with store.lookup(secret_name) as secret, redaction.masking(secret.password):
                config_file.write(render_template(template_text, secret, target))
        arguments = substitute_config_path(command, path)
        log.debug("Rendered %s into temporary config file %s.", template, path)
        log.info("Launching %s.", subprocess.list2cmdline(arguments))
        try:
            process = subprocess.Popen(arguments)
        except FileNotFoundError:
            raise ValidationError("The program %r could not be found." % arguments[0]) from None

        if not wait:
            sleep(read_delay)
            return process

        code = process.wait()
        log.info("%s exited with code %d.", arguments[0], code)
        return code
    finally:
        _delete(path)
