"""
This module contains internal-use functions for configuring and writing to
debug logs, using Python's internal logging functionality by default.
"""

import inspect
import logging

from heomgen.settings import settings

NOTSET = logging.NOTSET
DEBUG = logging.DEBUG
INFO = logging.INFO
WARN = logging.WARN
ERROR = logging.ERROR
CRITICAL = logging.CRITICAL

__all__ = ['get_logger']

metalogger = logging.getLogger(__name__)
metalogger.addHandler(logging.NullHandler())

_configured = set()


def get_logger(name=None):
    """
    Returns a Python logging object with handlers configured according to
    ``heomgen.settings.log_handler``. By default, this will do something
    sensible to integrate with IPython when running in that environment, and
    will print to stderr otherwise.

    This function is for internal use only and is not part of the heomgen
    API.

    Parameters
    ----------
    name : str
        Name of the logger to be created. If not passed, the name will
        automatically be set to the name of the calling module.
    """
    if name is None:
        try:
            calling_frame = inspect.stack()[1][0]
            calling_module = inspect.getmodule(calling_frame)
            name = (calling_module.__name__
                    if calling_module is not None else '<none>')
        except Exception:
            metalogger.warning('Error creating logger.', exc_info=1)
            name = '<unknown>'

    logger = logging.getLogger(name)

    policy = settings.log_handler
    if policy == 'default':
        policy = 'basic' if settings.ipython else 'stream'

    # Handlers are only attached once per logger, get_logger is called at
    # import time by several modules.
    if (name, policy) not in _configured:
        _configured.add((name, policy))
        metalogger.debug(
            "Creating logger for {} with policy {}.".format(name, policy)
        )

        if policy == 'basic':
            if settings.debug:
                logging.basicConfig(level=logging.DEBUG)
            else:
                logging.basicConfig()

        elif policy == 'stream':
            formatter = logging.Formatter(
                '[%(asctime)s] %(name)s[%(process)s]: '
                '%(funcName)s: %(levelname)s: %(message)s',
                '%Y-%m-%d %H:%M:%S')
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.propagate = False

        elif policy == 'null':
            logger.addHandler(logging.NullHandler())

    if settings.debug:
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.WARN)

    return logger
