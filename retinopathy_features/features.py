"""
Feature accumulation for one image-processing run.

The log is an ordered, append-only list of ``NAME#value`` records. Blank
records separate logical groups so the written file stays readable and the
downstream classifier can rely on record positions.
"""

import logging
import math
import os
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Value = Union[int, float, str]

UNRATED = "-1"


class FeatureLog:
    """
    Ordered collection of named measurements produced for one image.

    Parameters
    ----------
    name : str, optional
        Identifier of the image the features belong to (used in diagnostics)
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self.eye_radius = 0
        self.eye_area = 0.0
        self._records: List[Optional[Tuple[str, Value]]] = []

    def set_eye_radius(self, radius: int):
        """Store the eye radius and derive the eye area (pi r^2)."""
        self.eye_radius = radius
        self.eye_area = math.pi * radius * radius

    def add(self, name: str, value: Value):
        """
        Append a record.

        Non-finite numeric values are replaced by 0.0 and reported.
        """
        if isinstance(value, float) and not math.isfinite(value):
            logger.warning("Non-finite value %r for feature %s%s, storing 0.0",
                           value, name, f" ({self.name})" if self.name else "")
            value = 0.0
        self._records.append((name, value))

    def add_separator(self):
        self._records.append(None)

    @property
    def records(self) -> List[Tuple[str, Value]]:
        """All named records, separators excluded."""
        return [record for record in self._records if record is not None]

    def values(self, name: str) -> List[Value]:
        """Every value recorded under ``name``, in insertion order."""
        return [value for record_name, value in self.records if record_name == name]

    def lines(self) -> List[str]:
        return ["" if record is None else f"{record[0]}#{record[1]}"
                for record in self._records]

    def write(self, path: str):
        """Write one record per line to ``path``."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            for line in self.lines():
                fh.write(line + "\n")
        logger.debug("Wrote %d feature records to %s", len(self.records), path)

    def __len__(self) -> int:
        return len(self.records)
