"""Exception types shared across the brewery core.

Codec and scoring errors are recoverable and usually turn into a sentinel
or partial value close to where they are raised. Storage errors are logged
by the backends; only StorageInitError is meant to reach the caller.
"""


class BreweryError(Exception):
    """Base class for every error raised by the brewery core."""
    pass


class DecodeError(BreweryError):
    """Raised when an encoded payload cannot be read back."""
    pass


class EncodeError(BreweryError):
    """Raised when a value does not fit its field in a binary record."""
    pass


class InvalidEncodingSymbol(DecodeError):
    """Raised when base91 text contains a symbol outside the alphabet."""

    def __init__(self, symbol: str, position: int):
        super().__init__(f"Invalid base91 symbol {symbol!r} at position {position}")
        self.symbol = symbol
        self.position = position


class MalformedRecordError(BreweryError):
    """Raised when a persisted entity is missing a required field."""
    pass


class StorageInitError(BreweryError):
    """Raised when a storage backend cannot be opened."""
    pass


class StorageOperationError(BreweryError):
    """Raised internally when a single storage operation fails."""
    pass


class ConcurrencyTimeout(BreweryError):
    """Raised when the data load gate cannot be acquired in time."""
    pass


class ConfigValidationError(BreweryError):
    """Raised when a recipe definition fails validation."""

    def __init__(self, recipe_id: str, reason: str):
        super().__init__(f"Recipe '{recipe_id}' is invalid: {reason}")
        self.recipe_id = recipe_id
        self.reason = reason
