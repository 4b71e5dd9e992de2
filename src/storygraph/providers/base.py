"""Abstract collaborator interfaces for remote analysis services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from storygraph.db.models import Asset, TechnicalMetadata


@dataclass
class OperationStatus:
    done: bool
    response: dict = field(default_factory=dict)
    error: str | None = None


class BlobMirror(ABC):
    @abstractmethod
    def ensure_mirrored(self, asset: Asset) -> None:
        """Make the asset visible to the analysis sandbox. A no-op if already present."""
        ...

    @abstractmethod
    def uri_for(self, asset: Asset) -> str:
        ...


class TechProbe(ABC):
    @abstractmethod
    def probe(self, path: Path) -> TechnicalMetadata:
        ...


class InferenceProvider(ABC):
    @abstractmethod
    def infer(self, media_uri: str, mime_type: str, prompt: str) -> str:
        ...


class AnnotationProvider(ABC):
    @abstractmethod
    def submit(self, media_uri: str, features: list[str], context: dict) -> str:
        """Start a long-running job. Returns its operation handle."""
        ...

    @abstractmethod
    def poll(self, handle: str) -> OperationStatus:
        ...
