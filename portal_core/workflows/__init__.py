# portal_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple


# ===============================================================
# Canonical project workflow
# ===============================================================

DRAFT = "draft"
PENDING_SUPERVISOR = "pending_supervisor"
PENDING_HSM = "pending_hsm"
PENDING_TECHNICIAN = "pending_technician"
APPROVED = "approved"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"

PROJECT_STATES: Set[str] = {
    DRAFT,
    PENDING_SUPERVISOR,
    PENDING_HSM,
    PENDING_TECHNICIAN,
    APPROVED,
    IN_PROGRESS,
    COMPLETED,
}

PROJECT_TRANSITIONS: Dict[str, Set[str]] = {
    DRAFT: {PENDING_SUPERVISOR},
    PENDING_SUPERVISOR: {PENDING_HSM, DRAFT},
    PENDING_HSM: {PENDING_TECHNICIAN, DRAFT},
    PENDING_TECHNICIAN: {APPROVED, DRAFT},
    APPROVED: {IN_PROGRESS},
    IN_PROGRESS: {COMPLETED},
    COMPLETED: set(),
}

# Ordered review chain: (reviewer role, pending state, state reached on approval)
REVIEW_STAGES: Tuple[Tuple[str, str, str], ...] = (
    ("supervisor", PENDING_SUPERVISOR, PENDING_HSM),
    ("hsm", PENDING_HSM, PENDING_TECHNICIAN),
    ("lab_technician", PENDING_TECHNICIAN, APPROVED),
)

REVIEWER_ROLES: Tuple[str, ...] = tuple(role for role, _, _ in REVIEW_STAGES)

# Operational transitions outside the review chain
OPERATIONAL_TRANSITIONS: Dict[str, str] = {
    APPROVED: IN_PROGRESS,
    IN_PROGRESS: COMPLETED,
}

# ===============================================================
# Approval decisions
# ===============================================================

DECISION_APPROVED = "approved"
DECISION_CHANGES_REQUESTED = "changes_requested"

DECISIONS: Set[str] = {DECISION_APPROVED, DECISION_CHANGES_REQUESTED}


def normalize_state(value: str) -> str:
    return str(value or "").strip().lower()


def normalize_role(value: str) -> str:
    return str(value or "").strip().lower()


def is_terminal(state: str) -> bool:
    return not PROJECT_TRANSITIONS.get(normalize_state(state), set())


def pending_state_for_role(role: str) -> Optional[str]:
    r = normalize_role(role)
    for stage_role, pending, _ in REVIEW_STAGES:
        if stage_role == r:
            return pending
    return None


def reviewer_role_for_state(state: str) -> Optional[str]:
    s = normalize_state(state)
    for stage_role, pending, _ in REVIEW_STAGES:
        if pending == s:
            return stage_role
    return None


def next_state_on_approval(state: str) -> Optional[str]:
    s = normalize_state(state)
    for _, pending, approved_to in REVIEW_STAGES:
        if pending == s:
            return approved_to
    return None


def target_for_decision(state: str, decision: str) -> str:
    """
    Resolve where a reviewer decision moves a project.

    Approval advances one stage; a changes request always returns the
    project to draft so review restarts from the first stage.
    """
    d = normalize_state(decision)
    if d not in DECISIONS:
        raise ValueError(f"Unknown decision: {decision}")

    if d == DECISION_CHANGES_REQUESTED:
        return DRAFT

    nxt = next_state_on_approval(state)
    if nxt is None:
        raise ValueError(f"Project in state {normalize_state(state)} is not awaiting review")
    return nxt


# ===============================================================
# Public workflow API
# ===============================================================

def validate_transition(current: str, target: str) -> None:
    """
    Raises ValueError if current -> target is not part of the canonical workflow.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in PROJECT_STATES:
        raise ValueError(f"Unknown project state: {cur}")
    if tgt not in PROJECT_STATES:
        raise ValueError(f"Unknown project state: {tgt}")
    if tgt not in PROJECT_TRANSITIONS[cur]:
        raise ValueError(f"Invalid project transition: {cur} -> {tgt}")


def allowed_next_states(current: str) -> List[str]:
    return sorted(PROJECT_TRANSITIONS.get(normalize_state(current), set()))


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI.
    """
    return {
        "kind": "project",
        "initial": DRAFT,
        "terminal": sorted(s for s in PROJECT_STATES if is_terminal(s)),
        "states": sorted(PROJECT_STATES),
        "transitions": {state: sorted(nxt) for state, nxt in PROJECT_TRANSITIONS.items()},
        "review_stages": [
            {"role": role, "pending_state": pending, "on_approval": approved_to}
            for role, pending, approved_to in REVIEW_STAGES
        ],
        "decisions": sorted(DECISIONS),
    }


__all__ = [
    "DRAFT",
    "PENDING_SUPERVISOR",
    "PENDING_HSM",
    "PENDING_TECHNICIAN",
    "APPROVED",
    "IN_PROGRESS",
    "COMPLETED",
    "PROJECT_STATES",
    "PROJECT_TRANSITIONS",
    "REVIEW_STAGES",
    "REVIEWER_ROLES",
    "OPERATIONAL_TRANSITIONS",
    "DECISION_APPROVED",
    "DECISION_CHANGES_REQUESTED",
    "DECISIONS",
    "normalize_state",
    "normalize_role",
    "is_terminal",
    "pending_state_for_role",
    "reviewer_role_for_state",
    "next_state_on_approval",
    "target_for_decision",
    "validate_transition",
    "allowed_next_states",
    "workflow_definition",
]
