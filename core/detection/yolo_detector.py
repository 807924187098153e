import os
import cv2
import numpy as np
from ultralytics import YOLO
from typing import List
from core.detection.plate_localizer import PlateCandidate, PlateDetectorBackend
from core.errors import DetectorUnavailable
from utils.logger import get_logger

DEFAULT_MODEL = os.path.join("models", "plate_yolov8n.pt")


class YoloPlateDetector(PlateDetectorBackend):
    def __init__(self, model_path: str = "", confidence: float = 0.25):
        self.logger = get_logger(__name__)
        self.model_path = model_path or DEFAULT_MODEL
        self.confidence = confidence

        if not os.path.exists(self.model_path):
            raise DetectorUnavailable(f"YOLO plate model not found: {self.model_path}")

        try:
            self.model = YOLO(self.model_path)
        except Exception as e:
            raise DetectorUnavailable(f"Failed to load YOLO plate model {self.model_path}: {e}")

        self.logger.info(f"Loaded YOLO plate model: {self.model_path}")

    def detect(self, image: np.ndarray) -> List[PlateCandidate]:
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)

        results = self.model(image, conf=self.confidence, verbose=False)

        plates = []
        for result in results:
            boxes = result.boxes
            if boxes is not None:
                for box in boxes:
                    x1, y1, x2, y2 = box.xyxy[0].cpu().numpy()
                    plates.append(PlateCandidate(
                        bbox=(int(x1), int(y1), int(x2), int(y2)),
                        confidence=float(box.conf[0]),
                    ))

        return plates
