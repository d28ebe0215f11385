"""
Canonical workflow types (``stock_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the approval state machines (wastage, petty-cash
expense, sales order).  ``Workflow.transition_for`` is the single place
that decides whether an action is legal from a given state.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  May import
``stock_kernel.exceptions`` only.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions; any action from a terminal
  state raises ``InvalidStateError``.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the module service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``moves_stock=True`` marks transitions that write inventory movements
    and must therefore run inside the TransactionOrchestrator.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                f"is not one of {self.states}"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action}"
                )

    def transition_for(
        self,
        current_state: str,
        action: str,
        entity_id: int,
    ) -> Transition:
        """Return the transition for ``action`` from ``current_state``.

        Raises:
            InvalidStateError: No such transition exists (including every
                action attempted from a terminal state).
        """
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        raise InvalidStateError(
            entity_type=self.name,
            entity_id=entity_id,
            current_state=current_state,
            action=action,
        )

    def allowed_actions(self, current_state: str) -> tuple[str, ...]:
        return tuple(
            t.action for t in self.transitions if t.from_state == current_state
        )
