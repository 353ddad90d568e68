from botocore.exceptions import ClientError


class CloudFormationApiError(Exception):
    """Raised when a call to the CloudFormation API fails for any reason other than a missing stack or change set."""

    def __init__(self, operation: str, message: str, cause: Exception = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.cause = cause

    @property
    def error_code(self) -> str:
        if isinstance(self.cause, ClientError):
            return get_error_code(self.cause)
        return ""


def get_error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def get_error_message(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Message", "")


def stack_does_not_exist(error: Exception) -> bool:
    return (
        isinstance(error, ClientError)
        and get_error_code(error) == "ValidationError"
        and "does not exist" in get_error_message(error)
    )


def change_set_does_not_exist(error: Exception) -> bool:
    """A change set is also missing if the stack it belongs to does not exist."""
    return (
        isinstance(error, ClientError) and get_error_code(error) == "ChangeSetNotFound"
    ) or stack_does_not_exist(error)
