# /eirybot/models/template.py

from typing import Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, ConfigDict, Field

# Data shapes for bot templates. A fragment (base, specialty or goal layer) and
# the composed bot share the same shape, so a composed bot is itself a valid
# fragment. These are pure data models: no methods, no logic.

StepType = Literal["text", "ask", "ask_choice", "ask_optional", "menu", "handoff", "end"]

# Display text is either a plain string or a language-keyed record like
# {"es": "...", "en": "..."}.
TextOrLocalized = Union[str, Dict[str, str]]


class StepOption(BaseModel):
    """A selectable answer for choice-like steps (ask_choice, menu)."""
    value: str
    label: TextOrLocalized = ""


class StepCondition(BaseModel):
    """Redirects to flow `next` when the input equals `value` exactly."""
    value: str
    next: str
    variable: Optional[str] = None


class FlowStep(BaseModel):
    id: str
    type: StepType
    text: Optional[TextOrLocalized] = None
    options: Optional[List[StepOption]] = None
    next: Optional[str] = Field(default=None, description="Flow id to jump to after this step")
    variable: Optional[str] = Field(default=None, description="Lead key the input is captured under")
    condition: Optional[List[StepCondition]] = None

    model_config = ConfigDict(extra="ignore")


class Flow(BaseModel):
    id: str
    steps: List[FlowStep] = Field(default_factory=list)


class HandoffConfig(BaseModel):
    summary_template: TextOrLocalized = ""

    model_config = ConfigDict(extra="allow")


class BotTemplate(BaseModel):
    """
    A template fragment or a composed bot definition.

    `global_intents` maps a keyword to a flow id. It is carried through
    composition but not enforced by the runner.
    """
    flows: List[Flow] = Field(default_factory=list)
    global_intents: Dict[str, str] = Field(default_factory=dict)
    variables: Dict[str, Any] = Field(default_factory=dict)
    handoff: Optional[HandoffConfig] = None

    model_config = ConfigDict(extra="ignore")
