"""Checkpoint persistence for the statistical classifier.

A checkpoint is a plain dict of tensors, lists, strings and numbers so that
it round-trips through ``torch.load(weights_only=True)``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Protocol

import structlog
import torch

from neurofit_monitor.exceptions import CheckpointError

logger = structlog.get_logger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9_.-]+")


class ParameterStore(Protocol):
    """Load / save classifier checkpoints by an opaque identifier."""

    def load(self, model_id: str) -> dict[str, Any] | None:
        """Return the stored checkpoint, ``None`` if absent.

        Raise :class:`CheckpointError` when something is stored but unreadable.
        """

    def save(self, model_id: str, checkpoint: dict[str, Any]) -> None:
        ...


class FileParameterStore:
    """One ``<model_id>.pt`` file per model inside *directory*."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def path_for(self, model_id: str) -> Path:
        return self._dir / f"{_SAFE_ID.sub('_', model_id)}.pt"

    def load(self, model_id: str) -> dict[str, Any] | None:
        path = self.path_for(model_id)
        if not path.exists():
            return None
        try:
            return torch.load(path, map_location="cpu", weights_only=True)
        except Exception as exc:
            raise CheckpointError(f"cannot read checkpoint {path}: {exc}") from exc

    def save(self, model_id: str, checkpoint: dict[str, Any]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(model_id)
        tmp = path.with_suffix(".pt.tmp")
        torch.save(checkpoint, tmp)
        tmp.replace(path)
        logger.info("parameter_store.saved", model_id=model_id, path=str(path))


class InMemoryParameterStore:
    """Process-local store, handy for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}

    def load(self, model_id: str) -> dict[str, Any] | None:
        return self._items.get(model_id)

    def save(self, model_id: str, checkpoint: dict[str, Any]) -> None:
        self._items[model_id] = checkpoint

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._items
