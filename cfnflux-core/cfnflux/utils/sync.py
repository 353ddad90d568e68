import time
from typing import Callable


def poll_condition(condition: Callable[[], bool], timeout: float = None, interval: float = 0.5) -> bool:
    """
    Evaluates the given condition every ``interval`` seconds until it returns a truthy value, or until ``timeout``
    seconds have passed.

    :return: True once the condition was met, False if the timeout was reached first
    """
    deadline = time.monotonic() + timeout if timeout is not None else None

    while not condition():
        if deadline is not None and time.monotonic() + interval > deadline:
            return condition()
        time.sleep(interval)

    return True
