"""Domain-specific exceptions"""

from typing import List, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class MemberNotFoundError(DomainException):
    """Requested member does not exist"""

    def __init__(self, member_id: int):
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


class GraphCycleError(DomainException):
    """Referral walk met the same member twice"""

    def __init__(self, member_id: int, repeated_id: int, path: Optional[List[int]] = None):
        self.member_id = member_id
        self.repeated_id = repeated_id
        self.path = path or []
        super().__init__(
            f"Referral cycle detected while walking from member {member_id}: "
            f"member {repeated_id} reappeared (path {self.path})"
        )


class AlreadyClaimedError(DomainException):
    """Level income was already claimed on the current calendar day"""

    pass


class NoIncomeAvailableError(DomainException):
    """Computed income is zero or negative"""

    pass


class InsufficientBalanceError(DomainException):
    """Debit exceeds the wallet balance"""

    pass


class TeamCriteriaNotMetError(DomainException):
    """Team no longer satisfies the assigned digit tier"""

    def __init__(self, message: str, missing: List[str]):
        super().__init__(message)
        self.missing = missing


class ConcurrentClaimError(DomainException):
    """Another mutation of the same member committed first"""

    pass


class InvalidTransferError(DomainException):
    """Transfer request is malformed (same wallet, non-positive amount)"""

    pass


class UnknownJobError(DomainException):
    """No batch job registered under the given name"""

    pass
