from fastapi import status


class ShowcaseError(Exception):
    """Base class for domain errors surfaced to API callers."""

    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(ShowcaseError):
    """Missing or malformed input."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class ProductNotFound(ShowcaseError):
    code = "product_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class SellerIneligible(ShowcaseError):
    """Seller is missing, has payout automation disabled, or has no payout destination."""

    code = "seller_ineligible"
    status_code = status.HTTP_409_CONFLICT


class InsufficientStock(ShowcaseError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT


class TotalMismatch(ShowcaseError):
    """Client-reported total differs from the server-computed total."""

    code = "total_mismatch"
    status_code = status.HTTP_409_CONFLICT


class PaymentSessionUnavailable(ShowcaseError):
    code = "payment_session_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PaymentNotConfirmed(ShowcaseError):
    code = "payment_not_confirmed"
    status_code = status.HTTP_409_CONFLICT


class OrderNotFound(ShowcaseError):
    code = "order_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class OrderStateConflict(ShowcaseError):
    code = "order_state_conflict"
    status_code = status.HTTP_409_CONFLICT


class NoPendingBalance(ShowcaseError):
    code = "no_pending_balance"
    status_code = status.HTTP_409_CONFLICT


class PayoutNotFound(ShowcaseError):
    code = "payout_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PayoutSettlementError(ShowcaseError):
    """The processor refused or could not be reached for a seller transfer."""

    code = "payout_settlement_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


class CartStockExceeded(ShowcaseError):
    code = "cart_stock_exceeded"
    status_code = status.HTTP_409_CONFLICT


class SellerNotFound(ShowcaseError):
    code = "seller_not_found"
    status_code = status.HTTP_404_NOT_FOUND
