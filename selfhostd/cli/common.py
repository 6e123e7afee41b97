import functools
import logging
import sys

from selfhostd.errors import HostdError
from selfhostd.hostd import hd

logger = logging.getLogger(__name__)


def handle_errors(f):
    """
    log HostdError and exit with status 1
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except HostdError as e:
            logger.error(f"{e}")
            sys.exit(1)
    return wrapper


def configured():
    hd.configure()
    return hd
