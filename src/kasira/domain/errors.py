class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class OutOfStockError(AppError):
    pass


class UnauthorizedError(AppError):
    pass


class UnauthorizedBranchError(UnauthorizedError):
    pass


class UpstreamUnavailableError(AppError):
    pass


class AlreadySettledError(AppError):
    """Raised when a terminal payment status is applied to a settled transaction."""

    def __init__(self, transaction_id: str, current_status: str, requested_status: str):
        self.transaction_id = transaction_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Transaction {transaction_id} is already '{current_status}' (requested '{requested_status}')."
        )

    @property
    def is_duplicate(self) -> bool:
        return self.current_status == self.requested_status
