from fastapi import Header

from sync_api.core.errors import ApiError, AppHTTPException


def require_merchant(merchant_id: str, x_merchant_id: str | None = Header(default=None)) -> str:
    """The auth gateway forwards the authenticated merchant; it must own the path."""
    if not x_merchant_id:
        raise AppHTTPException(
            status_code=401, error=ApiError(code="unauthorized", message="Missing merchant identity")
        )
    if x_merchant_id != merchant_id:
        raise AppHTTPException(
            status_code=403,
            error=ApiError(code="forbidden", message="Merchant is not allowed to access this resource"),
        )
    return merchant_id
