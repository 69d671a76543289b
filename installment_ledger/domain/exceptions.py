"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidPaymentRowError(DomainException):
    """Parsed installment row is malformed or inconsistent"""

    pass


class DuplicatePaymentIdentityError(DomainException):
    """Ledger store rejected a payment identity that is already taken.

    Raised when another process wrote the same payment first. The row is
    safe to resolve again: the retry will find the winner's rows.
    """

    def __init__(self, payment_identity: str | None = None):
        self.payment_identity = payment_identity
        detail = f" ({payment_identity[:16]})" if payment_identity else ""
        super().__init__(f"Payment identity already recorded{detail}")


class PaymentNotFoundError(DomainException):
    """Requested payment or installment group does not exist"""

    pass
