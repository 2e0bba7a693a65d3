# /eirybot/engine/merge.py

"""
Template composition.

A bot is composed from ordered fragments (base -> specialty -> goal). Later
fragments win on every overlapping key:
- variables and global_intents are shallow-merged
- handoff is merged per key
- a flow with the same id replaces the earlier flow entirely

Composition is pure and total. It never validates the flow graph; dangling
references are resolved at run time by the runner.
"""

from typing import Dict, Iterable, Mapping, Optional, Any

from eirybot.models.template import BotTemplate, Flow, HandoffConfig

# Only these step kinds may be re-pointed by a composition-time route.
ROUTABLE_STEP_TYPES = ("text", "ask")


def merge_templates(templates: Iterable[BotTemplate]) -> BotTemplate:
    """
    Merge template fragments into one bot definition.

    Args:
        templates: Fragments in precedence order (lowest first)

    Returns:
        A new BotTemplate that shares no objects with the fragments
    """
    flow_registry: Dict[str, Flow] = {}
    variables: Dict[str, Any] = {}
    global_intents: Dict[str, str] = {}
    handoff: Dict[str, Any] = {"summary_template": ""}

    for template in templates:
        if template.variables:
            variables.update(template.variables)
        if template.global_intents:
            global_intents.update(template.global_intents)
        if template.handoff:
            handoff.update(template.handoff.model_dump(exclude_unset=True))
        for flow in template.flows:
            flow_registry[flow.id] = flow

    merged = BotTemplate(
        flows=list(flow_registry.values()),
        global_intents=global_intents,
        variables=variables,
        handoff=HandoffConfig(**handoff),
    )
    # Every session owns its bot; fragments stay untouched whatever the caller does
    return merged.model_copy(deep=True)


def compose_bot(
    templates: Iterable[BotTemplate],
    routes: Optional[Mapping[str, str]] = None,
    variables: Optional[Mapping[str, Any]] = None,
) -> BotTemplate:
    """
    Merge fragments, then bind late edges and seed variables.

    Args:
        templates: Fragments in precedence order
        routes: Router step id -> target flow id. Matching text/ask steps get
            their `next` pointed at the target flow.
        variables: Values overlaid on the merged variables (these win)

    Returns:
        The composed bot definition
    """
    bot = merge_templates(templates)

    if routes:
        for flow in bot.flows:
            for step in flow.steps:
                if step.id in routes and step.type in ROUTABLE_STEP_TYPES:
                    step.next = routes[step.id]

    if variables:
        bot.variables = {**bot.variables, **variables}

    return bot
