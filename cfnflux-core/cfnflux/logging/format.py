"""Tools for formatting controller logs."""
import contextvars
import logging
from contextlib import contextmanager
from functools import lru_cache

MAX_THREAD_NAME_LEN = 12
MAX_NAME_LEN = 26

LOG_FORMAT = f"%(asctime)s.%(msecs)03d %(cf_level)5s --- [%(cf_thread){MAX_THREAD_NAME_LEN}s] %(cf_name)-{MAX_NAME_LEN}s : %(cf_object)s%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

CUSTOM_LEVEL_NAMES = {
    50: "FATAL",
    40: "ERROR",
    30: "WARN",
    20: "INFO",
    10: "DEBUG",
}

# namespace/name of the CloudFormationStack the current thread is reconciling
current_object: contextvars.ContextVar[str] = contextvars.ContextVar("current_object", default="")


@contextmanager
def object_context(key: str):
    """Attaches the given object key to every log record emitted within the context."""
    token = current_object.set(key)
    try:
        yield
    finally:
        current_object.reset(token)


class DefaultFormatter(logging.Formatter):
    """
    A formatter that uses ``LOG_FORMAT`` and ``LOG_DATE_FORMAT``.
    """

    def __init__(self, fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT):
        super(DefaultFormatter, self).__init__(fmt=fmt, datefmt=datefmt)


class AddFormattedAttributes(logging.Filter):
    """
    Filter that adds four attributes to a log record:

    - cf_level: the abbreviated loglevel that's max 5 characters long
    - cf_name: the abbreviated name of the logger (e.g., `c.controllers.reconciler`), trimmed to ``MAX_NAME_LEN``
    - cf_thread: the abbreviated thread name (prefix trimmed, .e.g, ``olPoolExecutor_0``)
    - cf_object: the ``namespace/name`` of the stack being reconciled (followed by a blank), or empty
    """

    max_name_len: int
    max_thread_len: int

    def __init__(self, max_name_len: int = None, max_thread_len: int = None):
        super(AddFormattedAttributes, self).__init__()
        self.max_name_len = max_name_len if max_name_len else MAX_NAME_LEN
        self.max_thread_len = max_thread_len if max_thread_len else MAX_THREAD_NAME_LEN

    def filter(self, record):
        record.cf_level = CUSTOM_LEVEL_NAMES.get(record.levelno, record.levelname)
        record.cf_name = self._get_compressed_logger_name(record.name)
        record.cf_thread = record.threadName[-self.max_thread_len :]
        key = current_object.get()
        record.cf_object = f"[{key}] " if key else ""
        return True

    @lru_cache(maxsize=256)
    def _get_compressed_logger_name(self, name):
        return compress_logger_name(name, self.max_name_len)


def compress_logger_name(name: str, length: int) -> str:
    """
    Creates a short version of a logger name. For example ``my.very.long.logger.name`` with length=17 turns into
    ``m.v.l.logger.name``.

    :param name: the logger name
    :param length: the max length of the logger name
    :return: the compressed name
    """
    if len(name) <= length:
        return name

    parts = name.split(".")
    parts.reverse()

    new_parts = []

    # all parts start out collapsed to their first letter: "a.b.c" takes 2n - 1 characters
    cur_length = (len(parts) * 2) - 1

    for i in range(len(parts)):
        part = parts[i]
        next_len = cur_length + (len(part) - 1)

        if next_len > length:
            new_parts += [p[0] for p in parts[i:]]

            # the last part alone is too long, show as much of it as fits
            if i == 0:
                remaining = length - cur_length
                if remaining > 0:
                    new_parts[0] = part[: (remaining + 1)]

            break

        new_parts.append(part)
        cur_length = next_len

    new_parts.reverse()
    return ".".join(new_parts)
