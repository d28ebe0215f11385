"""
Typed Exception Hierarchy for the Stock Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the inventory core must tell "the user asked for something
impossible" apart from "the ledger is about to be corrupted".  Matching on
message text is fragile, so every error:
  1. has a TYPED exception class (catch by type, not message)
  2. has a CODE class attribute (machine-readable, API-safe)
  3. carries structured DATA as attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- ValidationError
    |   +-- JustificationRequiredError
    |
    +-- InsufficientStockError
    |
    +-- InvalidStateError
    |
    +-- ConsistencyError
    |
    +-- ImmutabilityViolationError
    |
    +-- TransactionTimeout
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- EntityNotFoundError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                   | When Raised                               | Handling
-----------------------|-------------------------------------------|---------------
VALIDATION_ERROR       | Non-positive quantity, negative cost      | user message
JUSTIFICATION_REQUIRED | Amendment without a justification         | user message
INSUFFICIENT_STOCK     | Workflow aborted on a reported shortfall  | structured data
INVALID_STATE          | Transition from a terminal/wrong state    | user message
CONSISTENCY_VIOLATION  | Batch would go negative / over capacity   | fatal, rollback
IMMUTABILITY_VIOLATION | Movement or frozen batch field modified   | fatal, rollback
TRANSACTION_TIMEOUT    | Workflow exceeded its time budget         | fatal, rollback
BATCH_NOT_FOUND        | Batch id does not exist                   | user message
ENTITY_NOT_FOUND       | Workflow entity id does not exist         | user message
CONFIGURATION_ERROR    | Settings failed validation                | startup abort

===============================================================================
HANDLING PATTERNS
===============================================================================

1. INSUFFICIENT STOCK IS DATA, NOT A CRASH:

    The allocator never raises for a shortfall; it returns an
    ``AllocationFailure``.  Workflows that must abort a multi-step unit
    raise ``InsufficientStockError`` and the TransactionOrchestrator turns
    it back into a rejected ``WorkflowOutcome`` after rolling back.

2. CONSISTENCY ERRORS ARE BUGS:

    except ConsistencyError as e:
        alert_operator(batch=e.batch_id)   # lock discipline violated
        raise
"""

from decimal import Decimal


class StockLedgerError(Exception):
    """
    Base exception for all stock ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


# Caller errors


class ValidationError(StockLedgerError):
    """Malformed input: the caller's fault, never retried automatically."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class JustificationRequiredError(ValidationError):
    """An amendment was attempted without a human-readable justification."""

    code: str = "JUSTIFICATION_REQUIRED"

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            "justification",
            None,
            f"amending {entity_type} {entity_id} requires a justification",
        )


# Business outcome


class InsufficientStockError(StockLedgerError):
    """
    Requested quantity exceeds eligible remaining stock.

    Raised only inside a workflow body to abort a multi-step unit of work.
    The orchestrator reports it to the caller as structured data.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        material_id: int,
        requested: Decimal,
        available: Decimal,
    ):
        self.material_id = material_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient stock for material {material_id}: "
            f"requested {requested}, available {available}"
        )


# Workflow state


class InvalidStateError(StockLedgerError):
    """Workflow transition attempted from a state that does not allow it."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: int,
        current_state: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: "
            f"current state is {current_state}"
        )


# Fatal errors


class ConsistencyError(StockLedgerError):
    """
    A mutation would violate 0 <= remaining_quantity <= quantity_received.

    Indicates a bug or a lock-discipline violation.  Always fatal, always
    rolled back.
    """

    code: str = "CONSISTENCY_VIOLATION"

    def __init__(
        self,
        batch_id: int,
        remaining_quantity: Decimal,
        delta: Decimal,
        quantity_received: Decimal,
    ):
        self.batch_id = batch_id
        self.remaining_quantity = remaining_quantity
        self.delta = delta
        self.attempted = remaining_quantity + delta
        self.quantity_received = quantity_received
        super().__init__(
            f"Batch {batch_id}: applying {delta} to remaining "
            f"{remaining_quantity} gives {self.attempted}, outside "
            f"[0, {quantity_received}]"
        )


class ImmutabilityViolationError(StockLedgerError):
    """Attempted to modify or delete an append-only or frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: int | None, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class TransactionTimeout(StockLedgerError):
    """Workflow exceeded its bounded execution time; fully rolled back."""

    code: str = "TRANSACTION_TIMEOUT"

    def __init__(self, workflow: str, timeout_seconds: float, elapsed_seconds: float):
        self.workflow = workflow
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Workflow {workflow} exceeded {timeout_seconds}s "
            f"(elapsed {elapsed_seconds:.3f}s)"
        )


# Lookup errors


class NotFoundError(StockLedgerError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class BatchNotFoundError(NotFoundError):
    """Inventory batch id does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Inventory batch {batch_id} not found")


class EntityNotFoundError(NotFoundError):
    """A workflow entity (wastage, expense, sales order) does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ConfigurationError(StockLedgerError):
    """Settings failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting {setting}: {reason}")
