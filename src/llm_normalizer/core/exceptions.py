"""core.exceptions

Centralised exception hierarchy for *llm_normalizer*.

Two families live here:

* **Normalization errors** raised by the cast / serialize engine. These are
  programmer or integration errors and are never retried.
* **Transport errors** raised by the SDK adapters. The retry decorator knows
  which of them are worth another attempt.

Each error carries an `http_status` attribute so that upper layers can
translate exceptions to HTTP responses without scattering status-code logic
throughout business code.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Mapping

    from llm_normalizer.core.rules import FieldError


# ---------------------------------------------------------------------------
# Base class with HTTP status information
# ---------------------------------------------------------------------------


class NormalizerError(Exception):
    """Base class for all *llm_normalizer* domain errors."""

    #: Default HTTP status if not overridden by subclass.
    http_status: ClassVar[HTTPStatus] = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)

    def to_json(self) -> dict[str, dict[str, Any]]:
        """Unified error body."""
        return {'error': {'type': self.__class__.__name__, 'message': str(self)}}


# ---------------------------------------------------------------------------
# Normalization errors
# ---------------------------------------------------------------------------


class CastError(NormalizerError):
    """Raised when a value's shape cannot be mapped to the target type."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.UNPROCESSABLE_ENTITY  # 422

    @classmethod
    def unsupported(cls, value: object, target: str) -> CastError:
        return cls(f'Cannot cast {type(value).__name__} to {target}: {value!r}')


class UnknownTagError(CastError):
    """Raised when an explicit `type` discriminator is not known for a family."""

    def __init__(self, tag: object, family: str) -> None:
        self.tag = tag
        self.family = family
        super().__init__(f'Unknown {family} type: {tag!r}')


class UnknownRoleError(CastError):
    """Raised when a message role has no concrete message class."""

    def __init__(self, role: object) -> None:
        self.role = role
        super().__init__(f'Unknown message role: {role!r}')


class RequestValidationError(NormalizerError):
    """Raised by `BridgeModel.raise_if_invalid()` when rules fail."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_REQUEST  # 400

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        super().__init__('; '.join(str(error) for error in self.errors) or 'invalid request')

    def to_json(self) -> dict[str, dict[str, Any]]:
        body = super().to_json()
        body['error']['fields'] = [{'field': e.field, 'message': e.message} for e in self.errors]
        return body


class ResponseShapeError(NormalizerError):
    """Raised when a raw provider response lacks a required structure."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_GATEWAY  # 502


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------


class ProviderNotFoundError(NormalizerError):
    """Raised when `ProviderRegistry` cannot find a requested provider key."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.NOT_IMPLEMENTED  # 501


class ModelNotFoundError(NormalizerError):
    """Raised when a model is unknown for a valid provider."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_REQUEST  # 400


class RateLimitExceededError(NormalizerError):
    """Raised when provider rate limits persist beyond retry strategy."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.TOO_MANY_REQUESTS  # 429


class ProviderClientError(NormalizerError):
    """Generic upstream provider error (e.g., unexpected 5xx)."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_GATEWAY  # 502


class GenerationTimeoutError(NormalizerError):
    """Raised when retry attempts exceed maximum backoff window."""

    http_status: ClassVar[HTTPStatus] = HTTPStatus.GATEWAY_TIMEOUT  # 504


HTTP_STATUS_MAP: Mapping[type[NormalizerError], HTTPStatus] = {
    CastError: CastError.http_status,
    UnknownTagError: UnknownTagError.http_status,
    UnknownRoleError: UnknownRoleError.http_status,
    RequestValidationError: RequestValidationError.http_status,
    ResponseShapeError: ResponseShapeError.http_status,
    ProviderNotFoundError: ProviderNotFoundError.http_status,
    ModelNotFoundError: ModelNotFoundError.http_status,
    RateLimitExceededError: RateLimitExceededError.http_status,
    ProviderClientError: ProviderClientError.http_status,
    GenerationTimeoutError: GenerationTimeoutError.http_status,
}
