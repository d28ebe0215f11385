"""
Petty-Cash Expense Workflows.

State machine for expense approval.  No transition moves stock.
"""

from stock_kernel.domain.workflow import Transition, Workflow

EXPENSE_WORKFLOW = Workflow(
    name="petty_cash_expense",
    description="Petty-cash expense approval",
    initial_state="pending",
    states=("pending", "approved", "rejected"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
    ),
    terminal_states=("approved", "rejected"),
)
