"""Guard context managers for common validation patterns."""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from idm.core.exceptions import ContractViolationError, IdmError, ValidationError


def is_request_like(value: Any) -> bool:
    """Whether ``value`` exposes the ``state`` attribute every request carries."""
    return value is not None and hasattr(value, "state")


@contextmanager
def guard_request(request: Any, operation: str) -> Iterator[Any]:
    """Guard that ensures an operation received a request object.

    Args:
        request: The value passed where a request is expected
        operation: Name of the calling operation, used in the error message

    Yields:
        The request object

    Raises:
        ContractViolationError: If ``request`` is not request-like

    Example:
        with guard_request(request, "get_credentials") as req:
            key = extract_session_key(req, cookie_name)
    """
    if not is_request_like(request):
        raise ContractViolationError(f"request object must be passed to idm.{operation}")
    yield request


@contextmanager
def guard_not_none(value: Optional[Any], error_message: str) -> Iterator[Any]:
    """Guard that ensures a value is not None.

    Raises:
        ValidationError: If value is None
    """
    if value is None:
        raise ValidationError(error_message, {"field": "value"})
    yield value


@contextmanager
def guard_condition(
    condition: bool, error_message: str, error_code: str = "validation_error"
) -> Iterator[None]:
    """Guard that ensures a condition is true.

    Raises:
        IdmError: If condition is false

    Example:
        with guard_condition(record is not None, "Unknown state", "invalid_state"):
            ...
    """
    if not condition:
        raise IdmError(error_message, error_code)
    yield
