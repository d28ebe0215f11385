"""
Sales Order Workflows.

State machine for order confirmation, delivery and cancellation.
"""

from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.sales.workflows")

ALL_LINES_AVAILABLE = Guard(
    name="all_lines_available",
    description="Every line can be allocated via FIFO in the same transaction",
)

logger.info(
    "sales_workflow_guards_defined",
    extra={"guards": [ALL_LINES_AVAILABLE.name]},
)

SALES_ORDER_WORKFLOW = Workflow(
    name="sales_order",
    description="Sales order lifecycle with FIFO-costed delivery",
    initial_state="draft",
    states=("draft", "confirmed", "delivered", "cancelled"),
    transitions=(
        Transition("draft", "confirmed", action="confirm"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("confirmed", "delivered", action="deliver",
                   guard=ALL_LINES_AVAILABLE, moves_stock=True),
        Transition("confirmed", "cancelled", action="cancel"),
        Transition("delivered", "cancelled", action="cancel", moves_stock=True),
    ),
    terminal_states=("cancelled",),
)
