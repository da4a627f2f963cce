"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Booking
  2xxx: Membership
  3xxx: Payment gateway
  4xxx: Refund / cancellation
  9xxx: System
"""

from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        details: Any = None,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.details = details
        super().__init__(message)


class ValidationError(AppError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(9003, message, 400, details)


class ConflictError(AppError):
    def __init__(self, code: int, message: str, details: Any = None) -> None:
        super().__init__(code, message, 409, details)


# --- 1xxx: Booking ---

class BookingNotFoundError(AppError):
    def __init__(self, booking_id: str) -> None:
        super().__init__(1001, f"Booking not found: {booking_id}", 404)


class SlotNotFoundError(AppError):
    def __init__(self, booking_id: str) -> None:
        super().__init__(1002, f"Slot not found in booking {booking_id}", 404)


class CancellationInProgressError(ConflictError):
    def __init__(self, booking_id: str) -> None:
        super().__init__(1003, f"Cancellation already in progress for booking {booking_id}")


# --- 2xxx: Membership ---

class CreditResolutionFailedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2001, f"Could not resolve paying member: {detail}", 404)


class RegistrationNotFoundError(AppError):
    def __init__(self, registration_id: str) -> None:
        super().__init__(2002, f"Registration not found: {registration_id}", 404)


# --- 3xxx: Payment gateway ---

class GatewayError(AppError):
    """Upstream payment gateway failure; keeps the gateway's HTTP status."""

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        details: Any = None,
        code: int = 3001,
    ) -> None:
        super().__init__(code, message, http_status or 500, details)


class GatewayConfigError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3002, f"Payment gateway misconfigured: {detail}", 500)


# --- 4xxx: Refund / cancellation ---

class InvalidRefundAmountError(AppError):
    def __init__(self, amount_cents: int) -> None:
        super().__init__(
            4001,
            f"Calculated refund amount is zero or invalid: {amount_cents} cents",
            400,
        )


class RefundNotConfirmedError(ConflictError):
    def __init__(self, last_status: str, refund_id: str) -> None:
        super().__init__(
            4002,
            "Refund not successful yet",
            {"status": last_status, "refund_id": refund_id},
        )
        self.last_status = last_status


class RefundRecordNotFoundError(AppError):
    def __init__(self, record_id: str) -> None:
        super().__init__(4003, f"Refund record not found: {record_id}", 404)


class RefundRejectedError(GatewayError):
    def __init__(self, status: str, details: Any = None) -> None:
        super().__init__(f"Gateway refund not accepted: {status}", 502, details, code=4004)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
