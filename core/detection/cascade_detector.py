import os
import cv2
import numpy as np
from typing import List, Tuple
from core.detection.plate_localizer import PlateCandidate, PlateDetectorBackend
from core.errors import DetectorUnavailable
from utils.logger import get_logger

DEFAULT_CASCADE = os.path.join(cv2.data.haarcascades, "haarcascade_russian_plate_number.xml")


class CascadePlateDetector(PlateDetectorBackend):
    """
    Haar cascade plate detector.

    Cascade level weights are unbounded stage sums, so they are squashed into
    (0, 1) with a logistic curve centred on ``weight_midpoint`` to be
    comparable with the localizer's confidence threshold.
    """

    def __init__(self, model_path: str = "", scale_factor: float = 1.1,
                 min_neighbors: int = 4, min_size: Tuple[int, int] = (40, 12),
                 weight_midpoint: float = 0.0):
        self.logger = get_logger(__name__)
        self.model_path = model_path or DEFAULT_CASCADE
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self.weight_midpoint = weight_midpoint

        if not os.path.exists(self.model_path):
            raise DetectorUnavailable(f"Cascade file not found: {self.model_path}")

        self.cascade = cv2.CascadeClassifier(self.model_path)
        if self.cascade.empty():
            raise DetectorUnavailable(f"Failed to load cascade: {self.model_path}")

        self.logger.info(f"Loaded plate cascade: {self.model_path}")

    def _confidence(self, weight: float) -> float:
        return float(1.0 / (1.0 + np.exp(-(weight - self.weight_midpoint))))

    def detect(self, image: np.ndarray) -> List[PlateCandidate]:
        rects, _, weights = self.cascade.detectMultiScale3(
            image,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_size,
            outputRejectLevels=True,
        )

        candidates = []
        for (x, y, w, h), weight in zip(rects, np.ravel(weights)):
            candidates.append(PlateCandidate(
                bbox=(int(x), int(y), int(x + w), int(y + h)),
                confidence=self._confidence(float(weight)),
            ))
        return candidates
