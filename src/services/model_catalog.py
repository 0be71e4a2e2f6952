"""
Model Catalog

Read-only view over the model listing returned by ``GET /models``. Listing
entries are kept as the raw dicts the upstream produced; helpers here only
read them and never fail on missing or oddly shaped metadata.
"""

from dataclasses import replace
from numbers import Real
from typing import Any, Dict, Iterable, List, Optional

from ..core.logging import logger
from ..core.settings import AppSettings, DEFAULT_SETTINGS

MAX_TOKEN_CONSTRAINT_KEYS = ("max_output_tokens", "maxOutputTokens", "max_tokens")


def constraint_number(constraint: Any) -> Optional[float]:
    """
    Resolve a constraint entry to a number.

    A constraint is either a bare number or an object with ``default`` and/or
    ``max`` fields; ``default`` wins over ``max``.
    """
    if constraint is None:
        return None
    if isinstance(constraint, Real) and not isinstance(constraint, bool):
        return constraint
    if isinstance(constraint, dict):
        for key in ("default", "max"):
            value = constraint.get(key)
            if isinstance(value, Real) and not isinstance(value, bool):
                return value
    return None


def model_spec(model: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(model, dict):
        return {}
    spec = model.get("model_spec")
    return spec if isinstance(spec, dict) else {}


def model_constraints(model: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    constraints = model_spec(model).get("constraints")
    return constraints if isinstance(constraints, dict) else {}


def max_output_tokens(model: Optional[Dict[str, Any]]) -> Optional[int]:
    """Largest completion size the model accepts, or its context size as a fallback."""
    if not isinstance(model, dict):
        return None
    constraints = model_constraints(model)
    for key in MAX_TOKEN_CONSTRAINT_KEYS:
        value = constraint_number(constraints.get(key))
        if value and value > 0:
            return int(value)
    context = model_spec(model).get("availableContextTokens")
    if isinstance(context, Real) and not isinstance(context, bool) and context > 0:
        return int(context)
    return None


class ModelCatalog:
    """
    Injected list of available models.

    The catalog is a snapshot: refreshing it means building a new instance.
    """

    def __init__(self, models: Optional[Iterable[Dict[str, Any]]] = None):
        self.models: List[Dict[str, Any]] = [
            model for model in (models or []) if isinstance(model, dict) and model.get("id")
        ]
        self._by_id = {model["id"]: model for model in self.models}

    @classmethod
    def from_payload(cls, payload: Any) -> "ModelCatalog":
        """Build from a listing response, ``{"data": [...]}`` or ``{"models": [...]}``."""
        models = None
        if isinstance(payload, list):
            models = payload
        elif isinstance(payload, dict):
            models = payload.get("data")
            if not isinstance(models, list):
                models = payload.get("models")
        if not isinstance(models, list):
            logger.warning("Model listing has no model list", payload_type=type(payload).__name__)
            models = []
        return cls(models)

    def __len__(self) -> int:
        return len(self.models)

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._by_id

    def find(self, model_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not model_id:
            return None
        return self._by_id.get(model_id)

    def display_name(self, model_id: str) -> str:
        name = model_spec(self.find(model_id)).get("name")
        if isinstance(name, str) and name:
            return name
        return model_id.split("/")[-1] or model_id

    def by_type(self, model_type: str) -> List[Dict[str, Any]]:
        return [model for model in self.models if model.get("type", "text") == model_type]

    def text_models(self) -> List[Dict[str, Any]]:
        return self.by_type("text")

    def image_models(self) -> List[Dict[str, Any]]:
        return self.by_type("image")

    def apply_model_defaults(self, settings: AppSettings, model_id: str) -> AppSettings:
        """
        Select a model and adopt the sampling limits it advertises.

        Unknown models leave the settings unchanged.
        """
        model = self.find(model_id)
        if model is None:
            logger.warning("Cannot select unknown model", model_id=model_id)
            return settings

        changes: Dict[str, Any] = {"model": model_id}
        constraints = model_constraints(model)

        temperature = constraint_number(constraints.get("temperature"))
        if temperature is not None:
            changes["temperature"] = float(temperature)
        top_p = constraint_number(constraints.get("top_p"))
        if top_p is not None:
            changes["top_p"] = float(top_p)
        max_tokens = max_output_tokens(model)
        if max_tokens:
            changes["max_tokens"] = max_tokens

        return replace(settings, **changes)

    def reset_to_model_defaults(self, settings: AppSettings) -> AppSettings:
        """Restore sampling parameters to the current model's defaults, else the app defaults."""
        model = self.find(settings.model)
        if model is None:
            return settings

        constraints = model_constraints(model)
        temperature = constraint_number(constraints.get("temperature"))
        top_p = constraint_number(constraints.get("top_p"))

        return replace(
            settings,
            temperature=float(temperature) if temperature is not None else DEFAULT_SETTINGS.temperature,
            top_p=float(top_p) if top_p is not None else DEFAULT_SETTINGS.top_p,
            max_tokens=max_output_tokens(model) or DEFAULT_SETTINGS.max_tokens,
            min_p=DEFAULT_SETTINGS.min_p,
            top_k=DEFAULT_SETTINGS.top_k,
            repetition_penalty=DEFAULT_SETTINGS.repetition_penalty,
        )
