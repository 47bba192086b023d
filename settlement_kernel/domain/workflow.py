"""
Canonical workflow types (``settlement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing a state machine: guards, transitions and the
workflow that ties them together.  The settlement period lifecycle is
declared with these types and evaluated by the period service.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A named condition checked before a transition fires.

    Descriptive only; the service that owns the aggregate evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition, triggered by ``action``."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    requires_reason: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    f"has outgoing transition {t.action}"
                )

    def find(self, from_state: str, action: str) -> Transition | None:
        """The transition for ``action`` out of ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which ``action`` is allowed, in declaration order."""
        seen: list[str] = []
        for t in self.transitions:
            if t.action == action and t.from_state not in seen:
                seen.append(t.from_state)
        return tuple(seen)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
