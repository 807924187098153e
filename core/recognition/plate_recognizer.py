import re
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple
from core.errors import OcrUnavailable
from utils.image_utils import enhance_image_contrast
from utils.logger import get_logger

DEFAULT_PLATE_PATTERN = r"^[A-Z0-9]{4,10}$"


@dataclass(frozen=True)
class OcrFragment:
    bbox: Tuple[int, int, int, int]  # x1, y1, x2, y2 within the plate crop
    text: str
    confidence: float


@dataclass(frozen=True)
class RecognizedPlate:
    text: str
    confidence: float
    is_valid: bool


class OcrEngine(ABC):
    """Given an image, return text fragments."""

    @abstractmethod
    def read(self, image: np.ndarray) -> List[OcrFragment]:
        raise NotImplementedError


def normalize_plate(text: str) -> str:
    return ''.join(c for c in (text or '').upper() if c.isascii() and c.isalnum())


class PlateRecognizer:
    def __init__(self, engine: OcrEngine, min_fragment_confidence: float = 0.1,
                 plate_pattern: str = DEFAULT_PLATE_PATTERN):
        self.logger = get_logger(__name__)
        self.engine = engine
        self.min_fragment_confidence = min_fragment_confidence
        self.plate_pattern = re.compile(plate_pattern)

    def is_valid_license_plate(self, text: str) -> bool:
        if not text:
            return False

        clean_text = normalize_plate(text)

        if not (4 <= len(clean_text) <= 10):
            return False

        if not any(c.isdigit() for c in clean_text):
            return False

        return bool(self.plate_pattern.match(clean_text))

    def recognize(self, plate_image: np.ndarray) -> RecognizedPlate:
        if plate_image is None or plate_image.size == 0:
            return RecognizedPlate(text="", confidence=0.0, is_valid=False)

        try:
            fragments = self.engine.read(enhance_image_contrast(plate_image))
        except OcrUnavailable:
            raise
        except Exception as e:
            self.logger.error(f"OCR error: {e}", exc_info=True)
            return RecognizedPlate(text="", confidence=0.0, is_valid=False)

        used = [f for f in fragments
                if f.confidence >= self.min_fragment_confidence and normalize_plate(f.text)]
        used.sort(key=lambda f: (f.bbox[0], f.bbox[1]))

        text = normalize_plate(''.join(f.text for f in used))
        confidence = float(np.mean([f.confidence for f in used])) if used else 0.0
        is_valid = self.is_valid_license_plate(text)

        if is_valid:
            self.logger.info(f"Recognized plate: {text} with confidence {confidence:.2f}")
        else:
            self.logger.warning(f"OCR text '{text}' does not look like a license plate")

        return RecognizedPlate(text=text, confidence=confidence, is_valid=is_valid)
