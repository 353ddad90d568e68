import logging
import os
from datetime import timedelta
from typing import Dict, Union

from cfnflux import constants
from cfnflux.constants import LOG_LEVELS, TRUE_STRINGS
from cfnflux.utils.strings import parse_key_value_pairs
from cfnflux.utils.time import parse_duration

LOG = logging.getLogger(__name__)


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    log_level = os.environ.get(env_var_name, "").lower().strip()
    return log_level if log_level in LOG_LEVELS else False


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def int_env(env_var_name: str, default: int) -> int:
    value = os.environ.get(env_var_name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        LOG.warning("Invalid integer value for %s: %r, using %s", env_var_name, value, default)
        return default


def duration_env(env_var_name: str, default: str) -> timedelta:
    value = os.environ.get(env_var_name, "").strip()
    try:
        return parse_duration(value or default)
    except ValueError:
        LOG.warning("Invalid duration value for %s: %r, using %s", env_var_name, value, default)
        return parse_duration(default)


def key_value_env(env_var_name: str) -> Dict[str, str]:
    try:
        return parse_key_value_pairs(os.environ.get(env_var_name))
    except ValueError as e:
        LOG.warning("Ignoring invalid value for %s: %s", env_var_name, e)
        return {}


# log level, one of LOG_LEVELS
LOG_LEVEL = eval_log_type("LOG_LEVEL")

# whether to enable debug logging
DEBUG = is_env_true("DEBUG") or LOG_LEVEL == "debug"

# the number of concurrent CloudFormationStack reconciles
CONCURRENT = int_env("CONCURRENT", 4)

# the interval at which failing dependencies are reevaluated
REQUEUE_DEPENDENCY = duration_env("REQUEUE_DEPENDENCY", "30s")

# the maximum number of retries when failing to fetch artifacts over HTTP
HTTP_RETRY = int_env("HTTP_RETRY", 9)

# bounds of the wait time between artifact download retries (in seconds)
HTTP_RETRY_WAIT_MIN = 5
HTTP_RETRY_WAIT_MAX = 30

# timeout for a single artifact download request (in seconds)
HTTP_TIMEOUT = int_env("HTTP_TIMEOUT", 60)

# the AWS region where CloudFormation stacks are deployed when a stack does not declare one
AWS_REGION = os.environ.get("AWS_REGION", "").strip() or None

# endpoint override for all AWS clients (e.g., to run against an AWS emulator)
AWS_ENDPOINT_URL = os.environ.get("AWS_ENDPOINT_URL", "").strip() or None

# the S3 bucket where templates are uploaded before they are passed to CloudFormation
TEMPLATE_BUCKET = os.environ.get("TEMPLATE_BUCKET", "").strip() or None

# tags applied to all stacks, in addition to the default tags added by the controller
STACK_TAGS = key_value_env("STACK_TAGS")

# the address of the events receiver (e.g., the Flux notification-controller)
EVENTS_ADDR = os.environ.get("EVENTS_ADDR", "").strip() or None

# whether to block references to sources in a namespace other than the stack's
NO_CROSS_NAMESPACE_REFS = is_env_true("NO_CROSS_NAMESPACE_REFS")

# host that replaces the host of artifact URLs, used during local development
SOURCE_CONTROLLER_LOCALHOST = (
    os.environ.get(constants.ENV_SOURCE_CONTROLLER_LOCALHOST, "").strip() or None
)

# the controller version applied as stack tag
CONTROLLER_VERSION = os.environ.get("CONTROLLER_VERSION", "").strip() or constants.VERSION


def get_log_level() -> int:
    if LOG_LEVEL:
        return logging._nameToLevel[str(LOG_LEVEL).upper()]
    return logging.DEBUG if DEBUG else logging.INFO
