"""
ferry.strings
=============

Parsers for config option values, and other string utilities.
"""


import ast
import logging
import re


from .exceptions import verify_type
from .plugins import config_loader


__all__ = [
    'parse_bool',
    'parse_int',
    'parse_number',
    'parse_byte_size',
    'parse_log_level',
]


@config_loader('bool')
def parse_bool(string, default=NotImplemented):
    """
    Convert a string to a bool. If the string is empty, the default is returned. Anything else
    that cannot be clearly read as a Boolean value is an error.

    :param string: The string to be parsed as a bool.
    :param default: The value to be returned if the string is empty.
    :return: The parsed bool value.
    """
    verify_type(string, str, non_empty=(default is NotImplemented))

    upper = string.strip().upper()
    if upper in ('Y', 'YES', 'T', 'TRUE', 'ON', '1'):
        return True
    elif upper in ('N', 'NO', 'F', 'FALSE', 'OFF', '0'):
        return False
    elif not upper and default is not NotImplemented:
        return default
    else:
        raise ValueError("Unrecognized Boolean string: %r" % string)


@config_loader('int')
def parse_int(string, default=NotImplemented):
    """
    Convert a string to an integer value. If the string is empty, the default is returned.

    :param string: The string to be parsed as an integer.
    :param default: The value to be returned if the string is empty.
    :return: The parsed integer value.
    """
    verify_type(string, str, non_empty=(default is NotImplemented))

    if not string.strip() and default is not NotImplemented:
        return default

    result = ast.literal_eval(string.strip())
    if not isinstance(result, int) or isinstance(result, bool):
        raise ValueError("Could not interpret string as integer: %r" % string)

    return result


@config_loader('number')
def parse_number(string):
    """
    Parse a number from a string. Returns either an integer or a float.

    :param string: The string to be parsed.
    :return: The integer or float that was parsed from the string.
    """
    value = ast.literal_eval(string.strip())
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValueError("Could not interpret string as a number: %r" % string)
    return value


_BYTE_UNITS = {
    '': 1,
    'b': 1,
    'k': 1024,
    'kb': 1024,
    'kib': 1024,
    'm': 1024 ** 2,
    'mb': 1024 ** 2,
    'mib': 1024 ** 2,
    'g': 1024 ** 3,
    'gb': 1024 ** 3,
    'gib': 1024 ** 3,
}


@config_loader('byte_size')
def parse_byte_size(string):
    """
    Parse a size in bytes, e.g. 1048576, 512 KB, or 10MB. Units are binary (1 KB = 1024 bytes).

    :param string: The string to be parsed.
    :return: The number of bytes, as an integer.
    """
    verify_type(string, str, non_empty=True)

    match = re.fullmatch(r'\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*', string)
    if not match or match.group(2).lower() not in _BYTE_UNITS:
        raise ValueError("Could not interpret string as a byte size: %r" % string)

    return int(float(match.group(1)) * _BYTE_UNITS[match.group(2).lower()])


@config_loader('log_level')
def parse_log_level(string):
    """
    Parse a log level, e.g. INFO, WARNING, etc.

    :param string: An integer or the name of a log level.
    :return: The integer value of the log level.
    """
    string = string.strip()
    if string.isdigit():
        return int(string)
    level = logging.getLevelName(string.upper())
    if not isinstance(level, int):
        raise ValueError("Unrecognized log level: %r" % string)
    return level

