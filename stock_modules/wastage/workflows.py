"""
Wastage Workflows.

State machine for loss reporting and approval.
"""

from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.wastage.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Eligible batches cover the wastage quantity at approval time",
)

JUSTIFICATION_PROVIDED = Guard(
    name="justification_provided",
    description="A non-blank justification accompanies the amendment",
)

logger.info(
    "wastage_workflow_guards_defined",
    extra={"guards": [STOCK_AVAILABLE.name, JUSTIFICATION_PROVIDED.name]},
)


# -----------------------------------------------------------------------------
# Wastage Workflow
# -----------------------------------------------------------------------------

# Approved records accept amendments only; approve/reject from approved is
# an InvalidStateError.
WASTAGE_WORKFLOW = Workflow(
    name="wastage",
    description="Wastage approval at actual FIFO cost",
    initial_state="pending",
    states=("pending", "approved", "rejected"),
    transitions=(
        Transition("pending", "approved", action="approve",
                   guard=STOCK_AVAILABLE, moves_stock=True),
        Transition("pending", "rejected", action="reject"),
        Transition("approved", "approved", action="amend",
                   guard=JUSTIFICATION_PROVIDED, moves_stock=True),
    ),
    terminal_states=("rejected",),
)
