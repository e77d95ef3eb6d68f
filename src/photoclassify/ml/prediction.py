"""Displayable prediction records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Prediction:
    """One label with its formatted confidence, e.g. ``("tabby", "87.34%")``.

    ``id`` only gives list renderers a stable key; two predictions with the
    same label and percentage compare equal regardless of it.
    """

    classification: str
    confidence_percentage: str
    id: uuid.UUID = field(default_factory=uuid.uuid4, compare=False)

    def __post_init__(self) -> None:
        if not self.classification:
            raise ValueError("Prediction classification must be a non-empty label")
