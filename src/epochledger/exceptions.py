"""
epochledger/exceptions.py

Error hierarchy. Every public operation either completes or raises one of
these after the journal has restored all ledger state.
"""


class LedgerError(Exception):
    """Base class for all ledger errors."""
    pass


# ============================================================================
# PRECONDITION VIOLATIONS
# ============================================================================

class PreconditionError(LedgerError):
    """An operation was called in a state where it is not allowed."""
    pass


class BeforeGenesisError(PreconditionError):
    """Elapsed time was measured before the genesis instant."""
    pass


class UnauthorizedError(PreconditionError):
    """Caller lacks the capability required by the operation."""
    pass


class EpochNotFinalizedError(PreconditionError):
    """A claim referenced an epoch the aggregator has not finalized yet."""
    pass


class UnknownComponentError(PreconditionError):
    """The component has never been registered with the aggregator."""
    pass


class RegistryError(PreconditionError):
    """Invalid registry mutation (capacity, ordering or scale)."""
    pass


class NotSynchronizedError(PreconditionError):
    """Catch-up did not finish within the per-call bound; call sync() and retry."""
    pass


# ============================================================================
# INVALID STATE
# ============================================================================

class InvalidStateError(LedgerError):
    """Internal accounting would leave a valid state."""
    pass


class ArithmeticStateError(InvalidStateError):
    """Checked arithmetic underflowed or overflowed."""
    pass


class PackingOverflowError(InvalidStateError):
    """A value does not fit the declared bit width of its field."""
    pass


# ============================================================================
# COLLABORATOR FAILURES
# ============================================================================

class TransferFailedError(LedgerError):
    """The asset ledger rejected a transfer."""
    pass
