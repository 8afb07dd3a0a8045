"""
ferry.cli
=========

The ferry command line.

    ferry copy SOURCE DESTINATION --endpoint ENDPOINT [--secret NAME] [--name FILE] [--copy-all]
    ferry launch TEMPLATE --secret NAME -- PROGRAM ARGS... {config} ...
    ferry vault set NAME USER
    ferry vault remove NAME
    ferry prune-logs

Failures are reported as a single line on stderr, with a non-zero exit code.
"""


import functools
import logging

from contextlib import contextmanager


import click


from . import __version__
from .configurations import ConfigManager, load_config
from .exceptions import FerryException, SecretNotFoundError
from .launcher import DEFAULT_READ_DELAY, launch as launch_program
from .logging import AuditLogHandler, configure_logging
from .orchestration import TransferOrchestrator
from .security import redaction
from .security.stores import DEFAULT_MASTER_PASSWORD_VARIABLE, VaultSecretStore, \
    get_secret_store
from .settings import TransferSettings
from .transfers import TransferRequest


__all__ = [
    'main',
]


log = logging.getLogger(__name__)


def load_manager(config_path=None):
    """
    Build the config manager for a command. An explicit config file is read last, so its values
    override those found on the search path.

    :param config_path: An optional config file path.
    :return: A ConfigManager instance.
    """
    config = load_config()
    if config_path is not None:
        with open(config_path, encoding='utf-8') as config_file:
            config.read_file(config_file)
    return ConfigManager(config)


def load_audit_handler(manager, log_file=None):
    """
    The audit log handler for a command: the given file if any, or else the one configured in the
    [Audit Log] section, if present.
    """
    if log_file is not None:
        return AuditLogHandler.load_config_value(manager, log_file)
    return manager.load_section('Audit Log', AuditLogHandler, default=None)


def config_option(function):
    return click.option(
        '--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
        help="A config file whose values override those on the search path."
    )(function)


def reports_errors(function):
    """Turn ferry errors raised by a command into a one-line message and exit code 1."""

    @functools.wraps(function)
    def wrapper(*args, **kwargs):
        try:
            return function(*args, **kwargs)
        except FerryException as exc:
            raise click.ClickException(redaction.redact(exc) or type(exc).__name__) from None
        except OSError as exc:
            raise click.ClickException(redaction.redact(exc.strerror or exc)) from None

    return wrapper


@contextmanager
def logs_failures():
    """Write a fatal error to the log while the command's handlers are still attached."""
    try:
        yield
    except (FerryException, OSError) as exc:
        log.error("Failed: %s", redaction.redact(exc) or type(exc).__name__)
        raise


@click.group()
@click.version_option(version=__version__)
def main():
    """Transfer files with credentials taken from a secret store."""


@main.command()
@click.argument('source')
@click.argument('destination')
@click.option('--endpoint', '-e', required=True,
              help="Where to send the files: [sftp://][user@]host[:port], file://, or robocopy://.")
@click.option('--secret', '-s', 'secret_name', help="The name of the stored login to use.")
@click.option('--name', '-n', 'destination_name', help="The destination file name.")
@click.option('--copy-all', '-a', is_flag=True, help="Copy a whole folder, recursively.")
@click.option('--silent', is_flag=True, help="No console output.")
@click.option('--verbose', '-v', is_flag=True, help="Report each file copied.")
@click.option('--log-file', type=click.Path(dir_okay=False), help="The audit log file.")
@config_option
@reports_errors
def copy(source, destination, endpoint, secret_name, destination_name, copy_all, silent,
         verbose, log_file, config_path):
    """Copy SOURCE to the DESTINATION folder on an endpoint."""
    manager = load_manager(config_path)
    settings = manager.load_section('Transfer', TransferSettings, default=None)
    if settings is None:
        settings = TransferSettings()
    settings = settings.replace(silent=silent or settings.silent,
                                verbose=verbose or (settings.verbose and not silent))

    with configure_logging(load_audit_handler(manager, log_file), settings.silent,
                           settings.verbose):
        with logs_failures():
            request = TransferRequest(source, destination, endpoint, secret_name=secret_name,
                                      destination_name=destination_name, copy_all=copy_all,
                                      silent=silent, verbose=verbose)
            store = get_secret_store(manager) if secret_name else None
            result = TransferOrchestrator(store, settings).run(request)

    if not result:
        raise click.ClickException(result.error)
    if not settings.silent:
        click.echo("Transferred %d file(s), %d byte(s)." % (result.files, result.size))


@main.command(context_settings={'ignore_unknown_options': True})
@click.argument('template', type=click.Path(exists=True, dir_okay=False))
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
@click.option('--secret', '-s', 'secret_name', required=True,
              help="The name of the stored login to render into the template.")
@click.option('--target', '-t', help="The value of $target in the template.")
@click.option('--no-wait', is_flag=True,
              help="Return once the program has had time to read its config.")
@click.option('--read-delay', type=float, default=DEFAULT_READ_DELAY, show_default=True,
              help="Seconds to wait before deleting the config when not waiting.")
@click.option('--log-file', type=click.Path(dir_okay=False), help="The audit log file.")
@config_option
@click.pass_context
@reports_errors
def launch(ctx, template, command, secret_name, target, no_wait, read_delay, log_file,
           config_path):
    """
    Render TEMPLATE with a stored login into a temporary config file and run COMMAND, replacing
    {config} in its arguments with the file's path.
    """
    manager = load_manager(config_path)
    with configure_logging(load_audit_handler(manager, log_file)):
        with logs_failures():
            result = launch_program(get_secret_store(manager), secret_name, template, command,
                                    target=target, wait=not no_wait, read_delay=read_delay)
    if not no_wait:
        ctx.exit(result)


def prompt_master_password():
    return click.prompt('Vault master password', hide_input=True)


def load_vault(manager, path=None):
    """The vault named on the command line, or the one configured as the secret store."""
    if path is None:
        if (manager.get_option('Secrets', 'Type', None) or '').strip().lower() != 'vault':
            raise click.ClickException("The configured secret store is not a vault; use --path.")
        path = manager.load_option('Secrets', 'Path', str)
    variable = manager.load_option('Secrets', 'Master Password Variable', str,
                                   DEFAULT_MASTER_PASSWORD_VARIABLE)
    return VaultSecretStore(path, variable=variable, prompt=prompt_master_password)


@main.group()
def vault():
    """Provision secrets in a vault file."""


@vault.command('set')
@click.argument('name')
@click.argument('user')
@click.option('--path', type=click.Path(dir_okay=False), help="The vault file.")
@config_option
@reports_errors
def vault_set(name, user, path, config_path):
    """Store the password for USER under NAME, replacing any previous one."""
    store = load_vault(load_manager(config_path), path)
    password = click.prompt('Password for %s' % user, hide_input=True, confirmation_prompt=True)
    with configure_logging():
        store.store(name, user, password)
    del password


@vault.command('remove')
@click.argument('name')
@click.option('--path', type=click.Path(dir_okay=False), help="The vault file.")
@config_option
@reports_errors
def vault_remove(name, path, config_path):
    """Remove the login stored under NAME."""
    store = load_vault(load_manager(config_path), path)
    with configure_logging():
        try:
            store.remove(name)
        except SecretNotFoundError:
            raise click.ClickException("Nothing is stored under %r." % name) from None


@main.command('prune-logs')
@click.option('--log-file', type=click.Path(dir_okay=False), help="The audit log file.")
@config_option
@reports_errors
def prune_logs(log_file, config_path):
    """Delete archived audit logs older than the retention window."""
    handler = load_audit_handler(load_manager(config_path), log_file)
    if handler is None:
        raise click.ClickException("No audit log is configured; use --log-file.")
    try:
        deleted = handler.prune()
    finally:
        handler.close()
    for path in deleted:
        log.debug("Deleted %s.", path)
    click.echo("Deleted %d archived log(s)." % len(deleted))
