class ConquestError(Exception):
    """Base class for territory engine errors."""

    status_code = 400


class InvalidBoundary(ConquestError):
    """The submitted path cannot produce a territory."""

    status_code = 400


class InvalidGeometry(ConquestError):
    """A geometry is empty, invalid or not a single polygon."""

    status_code = 422


class TerritoryNotFound(ConquestError):
    status_code = 404


class MergeStepFailed(ConquestError):
    """One same-owner neighbour could not be folded in. Recoverable."""

    def __init__(self, territory_id, cause):
        super().__init__(f"merge with territory {territory_id} failed: {cause}")
        self.territory_id = territory_id
        self.cause = cause


class StealStepFailed(ConquestError):
    """One rival territory could not be cut. Recoverable."""

    def __init__(self, territory_id, cause):
        super().__init__(f"cut of territory {territory_id} failed: {cause}")
        self.territory_id = territory_id
        self.cause = cause


class TransactionTimeout(ConquestError):
    status_code = 504
