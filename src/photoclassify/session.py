"""Selection session: the currently picked photo and its predictions.

Picking a photo first takes a ticket with ``begin()``. Every ``begin()`` and
every ``reset()`` supersedes all earlier tickets, so work started for an
older pick can neither become the selection (``commit``) nor write its
results (``apply``). Work returns a ``ClassificationBatch`` tagged with its
ticket, and the session only applies a batch whose ticket is still current.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from photoclassify.ml.prediction import Prediction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationBatch:
    """Complete classification output for one selection."""

    selection_id: int
    predictions: tuple[Prediction, ...]


@dataclass(frozen=True)
class SelectionState:
    """Immutable view of the session."""

    selection_id: int
    token: str | None
    has_image: bool
    image_size: tuple[int, int] | None
    predictions: tuple[Prediction, ...]


class ClassificationSession:
    def __init__(self) -> None:
        self._latest_ticket = 0
        self._selection_id = 0
        self._token: str | None = None
        self._image: NDArray[np.uint8] | None = None
        self._predictions: tuple[Prediction, ...] = ()

    @property
    def selection_id(self) -> int:
        return self._selection_id

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def image(self) -> NDArray[np.uint8] | None:
        return self._image

    @property
    def predictions(self) -> tuple[Prediction, ...]:
        return self._predictions

    def is_current(self, selection_id: int) -> bool:
        """True if ``selection_id`` is the committed selection and nothing newer has begun."""
        return selection_id == self._latest_ticket == self._selection_id

    def begin(self) -> int:
        """Take a ticket for a new pick; earlier in-flight picks become stale.

        The committed selection stays visible until the ticket is committed.
        """
        self._latest_ticket += 1
        return self._latest_ticket

    def commit(self, ticket: int, token: str, image: NDArray[np.uint8] | None = None) -> bool:
        """Make ``token`` the selection if ``ticket`` is still the latest one."""
        if ticket != self._latest_ticket:
            logger.info("Dropping superseded selection of %s (ticket %d)", token, ticket)
            return False
        self._selection_id = ticket
        self._token = token
        self._image = image
        self._predictions = ()
        logger.debug("Selection %d committed for %s", ticket, token)
        return True

    def select(self, token: str) -> int:
        """Start and commit a new selection in one step."""
        ticket = self.begin()
        self.commit(ticket, token)
        return ticket

    def attach_image(self, selection_id: int, image: NDArray[np.uint8]) -> bool:
        if not self.is_current(selection_id):
            logger.info("Dropping decoded image for superseded selection %d", selection_id)
            return False
        self._image = image
        return True

    def apply(self, batch: ClassificationBatch) -> bool:
        """Store ``batch`` if it belongs to the current selection."""
        if not self.is_current(batch.selection_id):
            logger.info(
                "Dropping stale predictions for selection %d (current is %d)",
                batch.selection_id,
                self._latest_ticket,
            )
            return False
        self._predictions = batch.predictions
        return True

    def reset(self) -> None:
        """Clear the picked image and its predictions."""
        self._latest_ticket += 1
        self._selection_id = self._latest_ticket
        self._token = None
        self._image = None
        self._predictions = ()
        logger.info("Selection reset")

    def snapshot(self) -> SelectionState:
        image_size = None
        if self._image is not None:
            image_size = (int(self._image.shape[1]), int(self._image.shape[0]))
        return SelectionState(
            selection_id=self._selection_id,
            token=self._token,
            has_image=self._image is not None,
            image_size=image_size,
            predictions=self._predictions,
        )
