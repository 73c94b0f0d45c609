"""
Labelled image contributions.

Users can submit an egg image together with the known sex of the chick that
hatched from it. Contributions are kept for the session only; nothing is
uploaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from chicksex_ai.errors import InputValidationError
from chicksex_ai.models import Sex

logger = logging.getLogger(__name__)

THANK_YOU_MESSAGE = "Thank you! Your contribution will help improve the AI model."


@dataclass(frozen=True)
class Contribution:
    image_name: str
    image_bytes: bytes
    label: Sex
    submitted_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))


class ContributionQueue:
    """In-session store of labelled images."""

    def __init__(self):
        self._items: list[Contribution] = []

    def submit(self, image_name: str, image_bytes: Optional[bytes], label: Optional[str]) -> Contribution:
        """Validate and store one contribution.

        Raises:
            InputValidationError: If the image is missing or the label is not
                male or female
        """
        if not image_bytes:
            raise InputValidationError("Please upload an image.")
        sex = Sex.from_text(label)
        if sex not in (Sex.MALE, Sex.FEMALE):
            raise InputValidationError("Please select the chick's gender.")

        contribution = Contribution(image_name=image_name or "upload", image_bytes=image_bytes, label=sex)
        self._items.append(contribution)
        logger.info("Stored contribution %s labelled %s", contribution.image_name, sex.value)
        return contribution

    @property
    def items(self) -> tuple[Contribution, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def counts(self) -> dict[str, int]:
        """Number of contributions per label."""
        return {
            sex.value: sum(1 for c in self._items if c.label == sex)
            for sex in (Sex.MALE, Sex.FEMALE)
        }
