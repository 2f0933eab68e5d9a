from typing import Dict, Any

from ..steps.dedup import DedupCheckStep
from ..steps.extraction import ExtractionStep
from ..steps.gates import ActionabilityGateStep, RelevanceGateStep
from ..steps.normalization import NormalizationStep
from ..steps.persistence import PersistenceStep


class StepFactory:
    # Do NOT put "module" in here to avoid circular imports
    _registry = {
        "dedup": DedupCheckStep,
        "relevance_gate": RelevanceGateStep,
        "actionability_gate": ActionabilityGateStep,
        "extraction": ExtractionStep,
        "normalization": NormalizationStep,
        "persistence": PersistenceStep,
    }

    @classmethod
    def register(cls, name: str, step_class):
        cls._registry[name] = step_class

    @classmethod
    def create(cls, step_def: Dict[str, Any]):
        step_type = step_def["type"]
        step_config = step_def.get("settings", {})

        if step_type == "module":
            from .base import PipelineModule
            return PipelineModule(step_config)

        step_class = cls._registry.get(step_type)
        if not step_class:
            raise ValueError(f"Step type '{step_type}' not registered.")

        return step_class(step_config)
