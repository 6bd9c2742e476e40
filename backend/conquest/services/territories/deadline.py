import time

from .errors import TransactionTimeout


class Deadline:
    """Wall-clock budget for one conquest.

    Cooperative: the budget is only enforced where ``check`` is called,
    between steps and between items of the merge and steal loops. A single
    shapely operation in progress is never interrupted, and the PostgreSQL
    ``statement_timeout`` set alongside it only bounds SQL statements. A
    step that overruns is caught at the next check.
    """

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def check(self, step: str = '') -> None:
        if time.monotonic() > self.expires_at:
            where = f' during {step}' if step else ''
            raise TransactionTimeout(f'conquest exceeded {self.seconds:g}s budget{where}')
