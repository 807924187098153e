import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple
from core.errors import DetectorUnavailable
from utils.logger import get_logger


@dataclass(frozen=True)
class PlateCandidate:
    bbox: Tuple[int, int, int, int]  # x1, y1, x2, y2
    confidence: float

    @property
    def area(self) -> int:
        x1, y1, x2, y2 = self.bbox
        return max(0, x2 - x1) * max(0, y2 - y1)


class PlateDetectorBackend(ABC):
    """Given an image, return scored plate regions."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[PlateCandidate]:
        raise NotImplementedError


class PlateLocalizer:
    def __init__(self, backend: PlateDetectorBackend, min_confidence: float = 0.5):
        self.logger = get_logger(__name__)
        self.backend = backend
        self.min_confidence = min_confidence

    def _clip(self, candidate: PlateCandidate, shape) -> PlateCandidate:
        h, w = shape[:2]
        x1, y1, x2, y2 = candidate.bbox
        bbox = (max(0, int(x1)), max(0, int(y1)), min(w, int(x2)), min(h, int(y2)))
        return PlateCandidate(bbox=bbox, confidence=float(candidate.confidence))

    def select_best(self, candidates: List[PlateCandidate]) -> Optional[PlateCandidate]:
        eligible = [c for c in candidates if c.area > 0 and c.confidence >= self.min_confidence]
        if not eligible:
            return None
        return max(eligible, key=lambda c: (c.confidence, c.area))

    def locate(self, image: np.ndarray) -> Optional[PlateCandidate]:
        """Best plate region in ``image`` coordinates, or None when nothing clears the threshold."""
        try:
            candidates = self.backend.detect(image)
        except DetectorUnavailable:
            raise
        except Exception as e:
            self.logger.error(f"Plate detection error: {e}", exc_info=True)
            return None

        clipped = [self._clip(c, image.shape) for c in candidates]
        best = self.select_best(clipped)

        if best is None:
            self.logger.info(f"No plate region above {self.min_confidence} among {len(clipped)} candidates")
        else:
            self.logger.info(f"Plate region {best.bbox} with confidence {best.confidence:.2f}")
        return best
