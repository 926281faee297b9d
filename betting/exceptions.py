"""Domain errors raised by the betting services.

Each error carries a stable ``code`` that the API returns to clients; views
decide the HTTP status. Errors never leave partial state behind: they are
raised inside the atomic block of the operation that detected them.
"""


class BettingError(Exception):
    code = "betting_error"
    default_message = "The operation could not be completed."

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class InsufficientFunds(BettingError):
    code = "insufficient_funds"
    default_message = "Insufficient balance."

    def __init__(self, message=None, *, balance=None, requested=None):
        self.balance = balance
        self.requested = requested
        super().__init__(message)


class GameFull(BettingError):
    code = "game_full"
    default_message = "Game is full."


class AlreadyJoined(BettingError):
    code = "already_joined"
    default_message = "You have already joined this game."


class AlreadySettled(BettingError):
    code = "already_settled"
    default_message = "Game has already been settled."


class GameNotReady(BettingError):
    code = "game_not_ready"
    default_message = "Game has not reached capacity."


class GameNotSettled(BettingError):
    code = "game_not_settled"
    default_message = "Game has not been settled yet."


class DuplicateReference(BettingError):
    code = "duplicate_reference"
    default_message = "Payment reference has already been processed."

    def __init__(self, transaction, message=None):
        self.transaction = transaction
        super().__init__(message)


class StorageUnavailable(BettingError):
    code = "storage_unavailable"
    default_message = "Storage is temporarily unavailable, please retry."


class InvalidSignature(BettingError):
    code = "invalid_signature"
    default_message = "Invalid webhook signature."
