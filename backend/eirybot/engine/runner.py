# /eirybot/engine/runner.py

"""
Pure flow runner.

Given a session snapshot and an optional user input, computes the transition
that moves the session cursor (flow id, step index) forward.

All functions are:
- Pure (the session is never mutated; callers apply the returned delta)
- Deterministic (same input = same output)
- Total (a structurally invalid cursor degrades to "completed", never raises)
- No database access
- No logging
"""

from typing import Optional

from eirybot.models.session import FieldUpdate, Session, SessionStatus, Transition
from eirybot.models.template import BotTemplate, Flow, FlowStep

DEFAULT_ENTRY_FLOW = "main"


def find_flow(template: BotTemplate, flow_id: Optional[str]) -> Optional[Flow]:
    """Looks up a flow by id in a composed template."""
    if not flow_id:
        return None
    for flow in template.flows:
        if flow.id == flow_id:
            return flow
    return None


def find_current_step(session: Session) -> Optional[FlowStep]:
    """The step under the session cursor, or None if the cursor points nowhere."""
    flow = find_flow(session.bot_instance, session.current_flow_id)
    index = session.current_step_index or 0
    if flow is None or index < 0 or index >= len(flow.steps):
        return None
    return flow.steps[index]


def get_next_step(session: Session, user_input: Optional[str] = None) -> Transition:
    """
    Compute the next cursor position for a session.

    Evaluation order on the current step:
    1. capture the input into the step variable
    2. conditions (first exact match jumps to the start of its flow)
    3. `next` naming an existing flow (jump to its start)
    4. handoff / end steps (advance past them and set the status)
    5. linear advance, completing when the flow runs out of steps

    Args:
        session: Current session snapshot
        user_input: Raw text the user submitted for the current step, if any

    Returns:
        Transition delta to apply to the session
    """
    current_flow_id = session.current_flow_id
    if not current_flow_id:
        return Transition(next_flow_id=DEFAULT_ENTRY_FLOW, next_step_index=0)

    flow = find_flow(session.bot_instance, current_flow_id)
    if flow is None:
        return Transition(status=SessionStatus.COMPLETED)

    current_index = session.current_step_index or 0
    if current_index < 0 or current_index >= len(flow.steps):
        return Transition(status=SessionStatus.COMPLETED)
    step = flow.steps[current_index]

    next_index = current_index + 1
    field_to_update = None
    if step.variable and user_input:
        field_to_update = FieldUpdate(key=step.variable, value=user_input)

    if step.condition and user_input:
        for cond in step.condition:
            if cond.value == user_input:
                return Transition(
                    next_flow_id=cond.next,
                    next_step_index=0,
                    field_to_update=field_to_update,
                )

    # `next` only redirects when it names a flow; otherwise fall through to linear advance
    if step.next and find_flow(session.bot_instance, step.next) is not None:
        return Transition(
            next_flow_id=step.next,
            next_step_index=0,
            field_to_update=field_to_update,
        )

    if step.type == "handoff":
        return Transition(
            next_flow_id=current_flow_id,
            next_step_index=next_index,
            field_to_update=field_to_update,
            status=SessionStatus.HANDOFF_READY,
        )

    if step.type == "end":
        return Transition(
            next_flow_id=current_flow_id,
            next_step_index=next_index,
            field_to_update=field_to_update,
            status=SessionStatus.COMPLETED,
        )

    if next_index >= len(flow.steps):
        return Transition(status=SessionStatus.COMPLETED, field_to_update=field_to_update)

    return Transition(
        next_flow_id=current_flow_id,
        next_step_index=next_index,
        field_to_update=field_to_update,
        status=session.status or SessionStatus.ACTIVE,
    )
