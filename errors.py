class ValidationError(ValueError):
    """Invalid user input. Raised before any state is touched."""


class NotFoundError(ValueError):
    """A referenced account, category, budget, pool or transaction is gone."""


class PersistenceError(RuntimeError):
    """Reading or writing the JSON store failed."""
