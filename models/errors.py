class LedgerError(Exception):
    """Lỗi nghiệp vụ: trả về cho client dạng {success: false, message}."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    pass


class InsufficientFunds(LedgerError):
    def __init__(self, message="Insufficient balance"):
        super().__init__(message)


class NotFound(LedgerError):
    pass


class AuthError(LedgerError):
    pass
