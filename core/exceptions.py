# core/exceptions.py
"""
Error taxonomy shared by every service entry point.

Each error carries a stable ``kind`` that callers (HTTP layer, jobs) can map
to a response without inspecting messages. Storage exceptions never leave a
service: ``domain_errors`` converts them and keeps the original as __cause__.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Mapping, Optional, TypeVar

from django.core.exceptions import ObjectDoesNotExist
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class DomainError(Exception):
    kind = "domain_error"
    default_message = "Operation failed."

    def __init__(self, message: Optional[str] = None, *, details: Optional[Mapping[str, Any]] = None):
        self.message = message or self.default_message
        self.details = dict(details) if details else {}
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class InvalidInput(DomainError):
    kind = "validation_error"
    default_message = "Invalid input."


class PaymentExceedsTotal(InvalidInput):
    default_message = "Paid amounts exceed the order total."


class AuthorizationError(DomainError):
    kind = "authorization_error"
    default_message = "Not allowed."


class StateConflict(DomainError):
    kind = "state_conflict"
    default_message = "Invalid state for this operation."


class InvalidStateTransition(StateConflict):
    pass


class DeliveryBlockedByDue(StateConflict):
    default_message = "Order cannot be delivered while an amount is still due."


class ResourceNotFound(DomainError):
    kind = "not_found"
    default_message = "Resource not found."


class ConsistencyError(DomainError):
    kind = "consistency_error"
    default_message = "Data consistency violation."


def _messages_from(exc: DjangoValidationError) -> list[str]:
    return [str(m) for m in exc.messages]


def domain_errors(func: F) -> F:
    """
    Decorator for public service functions.

    Must sit outside ``transaction.atomic`` so the block has already rolled
    back when the converted error reaches the caller.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DomainError:
            raise
        except ObjectDoesNotExist as exc:
            raise ResourceNotFound() from exc
        except DjangoValidationError as exc:
            messages = _messages_from(exc)
            raise InvalidInput("; ".join(messages), details={"errors": messages}) from exc
        except (ValueError, TypeError) as exc:
            # Lookups coerce ids and amounts; a malformed value surfaces here.
            logger.warning("Malformed value in %s: %s", func.__qualname__, exc)
            raise InvalidInput("A value has the wrong type or format.") from exc
        except IntegrityError as exc:
            logger.warning("Integrity error in %s: %s", func.__qualname__, exc)
            raise ConsistencyError("The change conflicts with existing data.") from exc
        except DatabaseError as exc:
            logger.exception("Database error in %s", func.__qualname__)
            raise ConsistencyError("The change could not be stored.") from exc

    return wrapper  # type: ignore[return-value]
