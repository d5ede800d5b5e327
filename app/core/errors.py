from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message}
        body.update({k: v for k, v in self.detail.items() if v is not None})
        return body


class NotFound(AppError):
    status_code = 404


class AlreadyExists(AppError):
    status_code = 409


class InvalidInput(AppError):
    status_code = 400


class InvalidVariant(AppError):
    """The variant's product has no Shopify product id."""

    status_code = 400


class OutOfStock(AppError):
    status_code = 400

    def __init__(self, variant_id: int, requested: int, available: int):
        super().__init__(
            "Out of stock",
            variant_id=variant_id,
            requested=requested,
            available=available,
        )
        self.available = available


class PlatformUserError(AppError):
    """Shopify accepted the request but rejected its content (userErrors)."""

    status_code = 422

    def __init__(self, message: str, messages: Optional[List[str]] = None, **detail: Any):
        super().__init__(message, messages=messages or [], **detail)
        self.messages = messages or []


class MaterializationFailed(PlatformUserError):
    pass


class PlatformTransportError(AppError):
    """Network or HTTP level failure while talking to Shopify."""

    status_code = 502
