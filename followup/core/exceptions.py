"""Exception hierarchy for the credit and entitlement service.

Error codes follow pattern: [CATEGORY][NUMBER]
- VAL: Request validation errors (001-099)
- ENT: Entitlement errors (100-199)
- PAY: Payment reconciliation errors (200-299)
- EXT: External collaborator errors (300-399)
- SYS: Store/system errors (400-499)
- SUB: Submission state errors (500-599)
"""

from __future__ import annotations

from typing import Any


class FollowUpException(Exception):
    """Base exception for all application errors.

    All custom exceptions inherit from this to enable centralized error handling.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with user-facing message and metadata.

        Args:
            message: User-facing error message
            code: Unique error code (e.g., "ENT100")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# VALIDATION ERRORS (VAL001-099)
# ============================================================================

class ValidationError(FollowUpException):
    """Required request fields are missing or malformed."""

    def __init__(self, message: str = "Missing required fields", fields: list[str] | None = None):
        super().__init__(
            message=message,
            code="VAL001",
            status_code=400,
            details={"fields": fields} if fields else {},
        )


class MissingCustomerEmailError(ValidationError):
    """A completed checkout carried no customer email; it cannot be attributed."""

    def __init__(self, session_ref: str | None = None):
        super().__init__(message="No customer email found in payment session")
        self.code = "VAL002"
        self.details = {"session_ref": session_ref} if session_ref else {}


# ============================================================================
# ENTITLEMENT ERRORS (ENT100-199)
# ============================================================================

class EntitlementDenied(FollowUpException):
    """Free trial already used and no credits left. Recoverable by payment."""

    def __init__(self, email: str | None = None, remaining_credits: int = 0):
        super().__init__(
            message="No credits remaining. Purchase a package to continue.",
            code="ENT100",
            status_code=402,
            details={"remaining_credits": remaining_credits, "purchase_url": "/packages"},
        )
        self.email = email
        self.remaining_credits = remaining_credits


# ============================================================================
# PAYMENT ERRORS (PAY200-299)
# ============================================================================

class PaymentError(FollowUpException):
    """Base class for payment reconciliation errors."""
    pass


class DuplicateEvent(PaymentError):
    """Payment session was already reconciled.

    Raised inside the reconciler only; it is converted into a successful
    ``duplicate`` result and never reaches the caller.
    """

    def __init__(self, session_ref: str, balance: int | None = None):
        super().__init__(
            message="This payment session has already been processed.",
            code="PAY200",
            status_code=200,
            details={"session_ref": session_ref},
        )
        self.session_ref = session_ref
        self.balance = balance


class InvalidSignatureError(PaymentError):
    """Webhook payload failed signature verification."""

    def __init__(self, reason: str = "Invalid signature"):
        super().__init__(message=reason, code="PAY201", status_code=400)


# ============================================================================
# EXTERNAL COLLABORATOR ERRORS (EXT300-399)
# ============================================================================

class ExternalServiceError(FollowUpException):
    """Base class for Generator/Notifier failures."""
    pass


class GeneratorFailure(ExternalServiceError):
    """The follow-up generator could not produce an artifact."""

    def __init__(self, reason: str, submission_id: int | None = None):
        super().__init__(
            message=f"Follow-up generation failed: {reason}",
            code="EXT300",
            status_code=502,
            details={"submission_id": submission_id} if submission_id else {},
        )
        self.submission_id = submission_id


class NotifierFailure(ExternalServiceError):
    """Email delivery failed."""

    def __init__(self, reason: str, address: str | None = None):
        super().__init__(
            message=f"Delivery failed: {reason}",
            code="EXT301",
            status_code=502,
            details={"address": address} if address else {},
        )


# ============================================================================
# STORE / SYSTEM ERRORS (SYS400-499)
# ============================================================================

class StoreError(FollowUpException):
    """Base class for account/ledger store errors."""
    pass


class ConflictRetryable(StoreError):
    """A concurrent transaction won the race; the unit of work must be re-run."""

    def __init__(self, reason: str = "Concurrent update detected"):
        super().__init__(message=reason, code="SYS400", status_code=409)


class TransientStoreError(StoreError):
    """Conflicts persisted past the retry budget."""

    def __init__(self, attempts: int, reason: str | None = None):
        message = f"Store busy after {attempts} attempts"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            code="SYS401",
            status_code=503,
            details={"attempts": attempts},
        )


class FatalInvariantError(StoreError):
    """A ledger/account invariant was violated. Indicates a logic defect."""

    def __init__(self, invariant: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Ledger invariant violated: {invariant}",
            code="SYS499",
            status_code=500,
            details=details,
        )


# ============================================================================
# SUBMISSION ERRORS (SUB500-599)
# ============================================================================

class InvalidSubmissionTransitionError(FollowUpException):
    """Submission status change not allowed from its current state."""

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            message=f"Cannot change submission status from '{current_status}' to '{new_status}'",
            code="SUB500",
            status_code=409,
            details={"current_status": current_status, "new_status": new_status},
        )
