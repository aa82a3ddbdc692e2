"""Iteration and completion state for a Ralph run."""

from __future__ import annotations

from dataclasses import dataclass, replace

from ralph_agent import promise

DEFAULT_COMPLETION_PROMISE = (
    "The task is complete. All requirements have been implemented and verified "
    "working. Any tests that were relevant have been run and are passing. The "
    "implementation is clean and production-ready."
)


def normalize_promise(value: str | None) -> str | None:
    """Normalize a completion promise; empty or "none" disables the check."""
    if value is None:
        return None
    normalized = promise.normalize_whitespace(value)
    if not normalized or normalized.lower() == "none":
        return None
    return normalized


@dataclass(frozen=True)
class RalphState:
    """Read-only snapshot of loop state."""

    active: bool = False
    unrestricted: bool = False
    original_task: str = ""
    completion_promise: str | None = None
    max_iterations: int = 0
    current_iteration: int = 0

    @property
    def iteration_label(self) -> str:
        """Iteration as "i/N", or "i" when unbounded."""
        if self.max_iterations > 0:
            return f"{self.current_iteration}/{self.max_iterations}"
        return str(self.current_iteration)


class LoopState:
    """Mutable loop state owned by a single run.

    Callers create one per invocation and pass it through the controller;
    there is no module-level instance.
    """

    def __init__(self) -> None:
        self._state = RalphState()

    def activate(
        self,
        task: str,
        completion_promise: str | None = DEFAULT_COMPLETION_PROMISE,
        max_iterations: int = 0,
        unrestricted: bool = False,
    ) -> None:
        """Start a run, overwriting any previous state."""
        self._state = RalphState(
            active=True,
            unrestricted=unrestricted,
            original_task=task,
            completion_promise=normalize_promise(completion_promise),
            max_iterations=max_iterations,
            current_iteration=1,
        )

    def deactivate(self) -> None:
        """Reset every field to its zero value."""
        self._state = RalphState()

    def advance(self) -> None:
        """Increment the iteration counter.

        Works while inactive too; only the counter changes.
        """
        self._state = replace(
            self._state, current_iteration=self._state.current_iteration + 1
        )

    def snapshot(self) -> RalphState:
        return self._state

    def should_continue(self) -> bool:
        """True while active and below the cap (caps <= 0 are unbounded)."""
        state = self._state
        if not state.active:
            return False
        if state.max_iterations <= 0:
            return True
        return state.current_iteration < state.max_iterations

    def check_for_promise(self, text: str) -> bool:
        """Check text against the active completion promise."""
        return promise.matches(self._state.completion_promise, text)
