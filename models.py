"""Logical model names and their upstream optimization endpoints."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Mapping

from config import AppConfig
from logger import LOGGER_NAME
from schemas import ModelCard, ModelList

log = logging.getLogger(LOGGER_NAME)


class ModelRouter:
    """
    Map client-facing model names to upstream path suffixes.

    Unknown names are not an error: they resolve to the default model's path.
    The response still echoes whatever name the client asked for.
    """

    def __init__(self, model_map: Mapping[str, str], default_model: str, owned_by: str) -> None:
        if default_model not in model_map:
            raise ValueError(f"default model {default_model!r} has no endpoint")
        self._model_map: Dict[str, str] = dict(model_map)
        self._default_model = default_model
        self._owned_by = owned_by

    @classmethod
    def from_config(cls, config: AppConfig) -> ModelRouter:
        return cls(config.model_map, config.default_model, config.model_owner)

    @property
    def default_model(self) -> str:
        return self._default_model

    def model_names(self) -> List[str]:
        return list(self._model_map)

    def resolve(self, model: str | None) -> str:
        """Return the upstream path for ``model``, falling back to the default."""
        endpoint = self._model_map.get(model or "")
        if endpoint is None:
            if model:
                log.debug("Unknown model %r; using default %r", model, self._default_model)
            endpoint = self._model_map[self._default_model]
        return endpoint

    def list_models(self) -> ModelList:
        """Enumerate known models for /v1/models."""
        now = int(time.time())
        return ModelList(
            data=[ModelCard(id=name, created=now, owned_by=self._owned_by) for name in self._model_map]
        )
