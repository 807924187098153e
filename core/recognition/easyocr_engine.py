import easyocr
import numpy as np
from typing import List, Sequence
from core.errors import OcrUnavailable
from core.recognition.plate_recognizer import OcrEngine, OcrFragment
from utils.logger import get_logger

PLATE_ALLOWLIST = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


class EasyOcrEngine(OcrEngine):
    def __init__(self, languages: Sequence[str] = ('en',), gpu: bool = False):
        self.logger = get_logger(__name__)
        try:
            self.ocr_reader = easyocr.Reader(list(languages), gpu=gpu)
        except Exception as e:
            raise OcrUnavailable(f"EasyOCR failed to initialise: {e}")
        self.logger.info(f"EasyOCR ready for languages: {', '.join(languages)}")

    def read(self, image: np.ndarray) -> List[OcrFragment]:
        results = self.ocr_reader.readtext(image, allowlist=PLATE_ALLOWLIST)

        fragments = []
        for (points, text, confidence) in results:
            xs = [int(p[0]) for p in points]
            ys = [int(p[1]) for p in points]
            fragments.append(OcrFragment(
                bbox=(min(xs), min(ys), max(xs), max(ys)),
                text=text,
                confidence=float(confidence),
            ))
        return fragments
