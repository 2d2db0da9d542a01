"""Closed error taxonomy for provider orchestration and the mapper into it."""

from __future__ import annotations

from enum import Enum
import re
from typing import Optional

import httpx


class ErrorCode(str, Enum):
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES = frozenset({ErrorCode.RATE_LIMITED, ErrorCode.SERVICE_UNAVAILABLE})
HEALTH_AFFECTING_CODES = RETRYABLE_CODES

# Whole provider error codes or phrases, never bare words.
_QUOTA_PATTERN = re.compile(
    r"\b(?:quota[ _]exceeded|exceeded (?:your |the )?quota|insufficient[ _](?:credits?|balance|funds)"
    r"|out of credits|exhausted balance|payment[ _]required)\b",
    re.IGNORECASE,
)
_RATE_LIMIT_PATTERN = re.compile(
    r"\b(?:rate[ _]limit(?:ed|[ _]exceeded|[ _]reached)|too many requests)\b",
    re.IGNORECASE,
)


class ClassifiedError(Exception):
    """The only error type surfaced to callers of the orchestration layer."""

    def __init__(self, code: ErrorCode, provider: Optional[str], detail: str) -> None:
        super().__init__(f"{code.value} provider={provider or '-'} detail={detail}")
        self.code = code
        self.provider = provider
        self.detail = detail

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def as_dict(self) -> dict[str, Optional[str]]:
        return {"code": self.code.value, "provider": self.provider, "detail": self.detail}


class ImageProviderError(RuntimeError):
    """Raised by adapters when a provider cannot fulfill a generation request."""


class ProviderHTTPError(ImageProviderError):
    """Non-2xx response from a provider endpoint."""

    def __init__(self, provider: str, status_code: int, detail: str) -> None:
        super().__init__(f"{provider}_request_failed status={status_code} detail={detail}")
        self.provider = provider
        self.status_code = status_code
        self.detail = detail


def invalid_parameters(provider: Optional[str], detail: str) -> ClassifiedError:
    return ClassifiedError(ErrorCode.INVALID_PARAMETERS, provider, detail)


def service_unavailable(provider: Optional[str], detail: str) -> ClassifiedError:
    return ClassifiedError(ErrorCode.SERVICE_UNAVAILABLE, provider, detail)


def insufficient_credits(provider: Optional[str], detail: str) -> ClassifiedError:
    return ClassifiedError(ErrorCode.INSUFFICIENT_CREDITS, provider, detail)


def _mentions(text: str, pattern: re.Pattern[str]) -> bool:
    return pattern.search(text or "") is not None


def _classify_status(status_code: int, detail: str, provider: Optional[str]) -> ClassifiedError:
    """Status decides first; the body only refines statuses that carry no meaning of their own."""

    context = f"status={status_code} detail={detail}"
    if status_code >= 500:
        return ClassifiedError(ErrorCode.SERVICE_UNAVAILABLE, provider, f"provider_server_error {context}")
    if status_code == 429:
        return ClassifiedError(ErrorCode.RATE_LIMITED, provider, f"provider_rate_limited {context}")
    if status_code == 402 or _mentions(detail, _QUOTA_PATTERN):
        return ClassifiedError(ErrorCode.QUOTA_EXCEEDED, provider, f"provider_quota_exhausted {context}")
    if _mentions(detail, _RATE_LIMIT_PATTERN):
        return ClassifiedError(ErrorCode.RATE_LIMITED, provider, f"provider_rate_limited {context}")
    return ClassifiedError(ErrorCode.UNKNOWN, provider, f"provider_request_rejected {context}")


def classify(raw: BaseException, *, provider: Optional[str]) -> ClassifiedError:
    """Map any adapter or transport failure onto ``ErrorCode``.

    Classification is closed: anything not recognized becomes ``UNKNOWN``.
    """

    if isinstance(raw, ClassifiedError):
        return raw
    if isinstance(raw, httpx.TimeoutException):
        return ClassifiedError(ErrorCode.SERVICE_UNAVAILABLE, provider, f"provider_timeout {type(raw).__name__}")
    if isinstance(raw, httpx.TransportError):
        return ClassifiedError(
            ErrorCode.SERVICE_UNAVAILABLE,
            provider,
            f"provider_unreachable {type(raw).__name__}: {raw}",
        )
    if isinstance(raw, ProviderHTTPError):
        return _classify_status(raw.status_code, raw.detail, provider or raw.provider)
    if isinstance(raw, httpx.HTTPStatusError):
        return _classify_status(raw.response.status_code, _truncate(raw.response.text), provider)
    if isinstance(raw, ImageProviderError):
        message = str(raw)
        if _mentions(message, _QUOTA_PATTERN):
            return ClassifiedError(ErrorCode.QUOTA_EXCEEDED, provider, message)
        if _mentions(message, _RATE_LIMIT_PATTERN):
            return ClassifiedError(ErrorCode.RATE_LIMITED, provider, message)
        return ClassifiedError(ErrorCode.UNKNOWN, provider, message)
    return ClassifiedError(ErrorCode.UNKNOWN, provider, f"unexpected_error {type(raw).__name__}: {raw}")


def _truncate(detail: str, limit: int = 240) -> str:
    cleaned = (detail or "").strip()
    if len(cleaned) > limit:
        return cleaned[:limit] + "..."
    return cleaned
