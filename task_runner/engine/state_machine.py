#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Phase State Machine

Defines which phases may follow which on completion, and the default
progression used when the caller does not name a next phase.

State diagram:
    issue_start    → implementation
    implementation → quality_check
    quality_check  → pr_creation
    pr_creation    → fix          (caller override only: CI failed)
    pr_creation    → completion   (default)
    fix            → quality_check
    completion     → (terminal)

The fix → quality_check edge closes a loop, so a workflow may pass through
remediation any number of times. The engine never decides on its own to take
the pr_creation → fix branch; that is the caller's call via next_phase.

Lookups here never raise on unknown input: a value outside the Phase enum
simply has no transitions.
"""

from types import MappingProxyType
from typing import Any, Mapping

from .models import Phase


# ---------------------------------------------------------------------------
# Valid transitions: {from_phase: frozenset(to_phases)}
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: Mapping[Phase, frozenset[Phase]] = MappingProxyType({
    Phase.ISSUE_START: frozenset([Phase.IMPLEMENTATION]),
    Phase.IMPLEMENTATION: frozenset([Phase.QUALITY_CHECK]),
    Phase.QUALITY_CHECK: frozenset([Phase.PR_CREATION]),
    Phase.PR_CREATION: frozenset([
        Phase.FIX,
        Phase.COMPLETION,
    ]),
    Phase.FIX: frozenset([Phase.QUALITY_CHECK]),
    # Terminal: no outgoing transitions
    Phase.COMPLETION: frozenset(),
})


# Next phase when no (valid) override is supplied. completion maps to itself:
# re-completing a finished workflow is a no-op rather than an error.
DEFAULT_NEXT_PHASE: Mapping[Phase, Phase] = MappingProxyType({
    Phase.ISSUE_START: Phase.IMPLEMENTATION,
    Phase.IMPLEMENTATION: Phase.QUALITY_CHECK,
    Phase.QUALITY_CHECK: Phase.PR_CREATION,
    Phase.PR_CREATION: Phase.COMPLETION,
    Phase.FIX: Phase.QUALITY_CHECK,
    Phase.COMPLETION: Phase.COMPLETION,
})


def _as_phase(value: Any) -> Phase | None:
    if isinstance(value, Phase):
        return value
    try:
        return Phase(value)
    except (ValueError, TypeError):
        return None


# ---------------------------------------------------------------------------
# State machine functions
# ---------------------------------------------------------------------------


def is_valid_transition(from_phase: Any, to_phase: Any) -> bool:
    """Return True if to_phase may directly follow from_phase."""
    source = _as_phase(from_phase)
    target = _as_phase(to_phase)
    if source is None or target is None:
        return False
    return target in VALID_TRANSITIONS.get(source, frozenset())


def available_transitions(from_phase: Any) -> frozenset[Phase]:
    """Return the set of phases reachable from from_phase (empty if unknown)."""
    source = _as_phase(from_phase)
    if source is None:
        return frozenset()
    return VALID_TRANSITIONS.get(source, frozenset())


def is_terminal(phase: Any) -> bool:
    """Return True if the phase has no outgoing transitions."""
    source = _as_phase(phase)
    return source is not None and not VALID_TRANSITIONS.get(source)


def default_next_phase(phase: Phase) -> Phase:
    """Return the phase that follows phase when no override is given."""
    return DEFAULT_NEXT_PHASE[phase]


def resolve_next_phase(current: Phase, override: Phase | None) -> Phase:
    """
    Pick the phase that follows a completion of current.

    A present override wins when it is a valid transition from current;
    otherwise the default progression applies.
    """
    if override is not None and is_valid_transition(current, override):
        return override
    return default_next_phase(current)
