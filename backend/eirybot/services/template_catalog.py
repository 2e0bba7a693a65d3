# /eirybot/services/template_catalog.py

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from eirybot.models.template import BotTemplate

# This service loads the bot template fragments shipped with the package and
# implements the business rules that pick which fragments, and which goal
# flow, a demo session gets for a given specialty and goal.

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

BASE_TEMPLATE = "base"
DEFAULT_GOAL = "appointments"

SPECIALTIES = ("dental", "real_estate", "legal", "ecommerce", "education")

GOAL_TEMPLATES = {
    # Generic
    "appointments": "appointments",
    "faqs": "faqs",
    "promotions": "promotions",
    # Dental / medical
    "insurance_check": "insurance_check",
    "new_patient_intake": "new_patient_intake",
    "orthodontics_consult": "orthodontics_consult",
    "post_visit_instructions": "post_visit_instructions",
}

GOAL_FLOWS = {
    "appointments": "flow_appointments",
    "faqs": "flow_faqs",
    "insurance_check": "flow_insurance",
    "new_patient_intake": "flow_patient_intake",
    "orthodontics_consult": "flow_ortho",
    "post_visit_instructions": "flow_instructions",
    "promotions": "flow_promotions",
}
DEFAULT_GOAL_FLOW = GOAL_FLOWS[DEFAULT_GOAL]

# (goal, specialty) pairs that use a specialty-specific goal layer
GOAL_OVERRIDES = {
    ("faqs", "real_estate"): ("faqs_real_estate", "flow_faqs_re"),
}


class TemplateCatalog:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.templates_dir = templates_dir
        self._templates_cache: Dict[str, BotTemplate] = {}
        logger.info("TemplateCatalog initialized.")

    def load_templates(self) -> None:
        """Loads and validates every fragment into the in-memory cache."""
        logger.info(f"Loading bot templates from {self.templates_dir}...")
        for path in sorted(self.templates_dir.rglob("*.json")):
            key = path.relative_to(self.templates_dir).with_suffix("").as_posix()
            self._templates_cache[key] = self._read(path)
        logger.info(f"Successfully loaded {len(self._templates_cache)} bot templates.")

    def get(self, key: str) -> BotTemplate:
        """Returns a fragment by its path key, e.g. 'base' or 'goals/faqs'."""
        template = self._templates_cache.get(key)
        if template is None:
            template = self._read(self.templates_dir / f"{key}.json")
            self._templates_cache[key] = template
        return template

    def _read(self, path: Path) -> BotTemplate:
        with path.open(encoding="utf-8") as f:
            return BotTemplate.model_validate(json.load(f))

    # ==================== Selection Rules ====================

    def get_base_template(self) -> BotTemplate:
        return self.get(BASE_TEMPLATE)

    def get_specialty_template(self, specialty: Optional[str]) -> Optional[BotTemplate]:
        """Returns the industry layer, or None for unknown specialties."""
        if specialty not in SPECIALTIES:
            return None
        return self.get(f"specialties/{specialty}")

    def get_goal_template(self, goal: Optional[str], specialty: Optional[str] = None) -> BotTemplate:
        """Returns the goal layer; unknown goals fall back to appointments."""
        override = GOAL_OVERRIDES.get((goal, specialty))
        if override:
            return self.get(f"goals/{override[0]}")
        return self.get(f"goals/{GOAL_TEMPLATES.get(goal, GOAL_TEMPLATES[DEFAULT_GOAL])}")

    def resolve_goal_flow(self, goal: Optional[str], specialty: Optional[str] = None) -> str:
        """Flow id the main flow's router step should jump to."""
        override = GOAL_OVERRIDES.get((goal, specialty))
        if override:
            return override[1]
        return GOAL_FLOWS.get(goal, DEFAULT_GOAL_FLOW)

    def select_fragments(self, specialty: Optional[str], goal: Optional[str]) -> List[BotTemplate]:
        """Fragments in precedence order: base, specialty (if known), goal."""
        fragments = [self.get_base_template()]
        specialty_template = self.get_specialty_template(specialty)
        if specialty_template is not None:
            fragments.append(specialty_template)
        fragments.append(self.get_goal_template(goal, specialty))
        return fragments


# Globally accessible instance
template_catalog = TemplateCatalog()
