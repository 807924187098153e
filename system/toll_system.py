import cv2
import numpy as np
from datetime import date
from pymongo.errors import ConnectionFailure
from typing import Dict, Optional
from config.config_loader import ConfigLoader
from core.billing.billing_engine import BillingEngine, RateTable
from core.detection.cascade_detector import CascadePlateDetector
from core.detection.plate_localizer import PlateDetectorBackend, PlateLocalizer
from core.detection.yolo_detector import YoloPlateDetector
from core.preprocessing.image_preprocessor import ImagePreprocessor
from core.recognition.easyocr_engine import EasyOcrEngine
from core.recognition.plate_recognizer import OcrEngine, PlateRecognizer
from core.registry.vehicle_registry import VehicleRegistry
from database.artifact_store import ArtifactStore
from database.models import CaptureOutcome
from database.mongodb_manager import MongoDBManager
from database.toll_log import TollLog
from system.lane_worker import LaneWorker
from system.toll_pipeline import TollPipeline
from utils.file_manager import FileManager
from utils.logger import get_logger


class TollSystem:
    """
    Startup wiring for the toll checkpoint.

    Construction raises ConfigError, DetectorUnavailable or OcrUnavailable
    when the checkpoint cannot run; no frame is processed in that case.
    """

    def __init__(self, base_dir: str = "ai_toll_system", config_file: Optional[str] = None,
                 detector: Optional[PlateDetectorBackend] = None,
                 ocr_engine: Optional[OcrEngine] = None):
        self.logger = get_logger(__name__)
        self.files = FileManager(base_dir)
        self.config = ConfigLoader.load_config(config_file or self.files.config_path("config.txt"))

        self.rate_table = RateTable.from_config(self.config)
        self.toll_log = TollLog(self.files.log_path("transaction_log.csv"),
                                self.files.log_path("error_log.txt"))

        self.registry = VehicleRegistry(
            allow_negative_balance=self.config['allow_negative_balance'],
            negative_balance_limit=self.config['negative_balance_limit'],
            error_log=self.toll_log,
        )
        self.registry.load(self.files.config_path("registered_vehicles.csv"))
        self.rate_table.validate(self.registry.vehicle_classes())

        self.logger.info(
            f"Camera {self.config['camera_resolution_width']}x{self.config['camera_resolution_height']}"
            f" @ {self.config['camera_fps']} fps")

        self.pipeline = TollPipeline(
            preprocessor=ImagePreprocessor(max_size=(self.config['camera_resolution_width'],
                                                     self.config['camera_resolution_height'])),
            localizer=PlateLocalizer(detector or self._create_detector(),
                                     min_confidence=self.config['plate_min_confidence']),
            recognizer=PlateRecognizer(ocr_engine or EasyOcrEngine(
                languages=self.config['ocr_languages'], gpu=self.config['ocr_gpu'])),
            registry=self.registry,
            billing=BillingEngine(self.registry, self.rate_table),
            toll_log=self.toll_log,
            artifacts=ArtifactStore(self.files.output_dir("processed_images"),
                                    self.files.output_dir("captured_plates")),
            transaction_mirror=self._create_transaction_mirror(),
        )

        self.lanes: Dict[str, LaneWorker] = {
            f"lane_{i}": LaneWorker(f"lane_{i}", self.pipeline)
            for i in range(1, self.config['lanes'] + 1)
        }
        self.logger.info(f"Toll system ready with {len(self.lanes)} lane(s)")

    def _create_detector(self) -> PlateDetectorBackend:
        model_path = self.config['detector_model_path']
        if self.config['detector_backend'] == 'yolo':
            return YoloPlateDetector(model_path=model_path)
        return CascadePlateDetector(model_path=model_path)

    def _create_transaction_mirror(self) -> Optional[MongoDBManager]:
        if not self.config['mongodb_enabled']:
            return None
        try:
            return MongoDBManager(self.config)
        except ConnectionFailure:
            self.logger.warning("Continuing without the MongoDB transaction mirror")
            return None

    def process_frame(self, frame: np.ndarray, lane: str = "lane_1") -> CaptureOutcome:
        return self.lanes[lane].submit(frame).result()

    def process_image_file(self, image_path: str, lane: str = "lane_1") -> CaptureOutcome:
        frame = cv2.imread(image_path)
        if frame is None:
            self.logger.warning(f"Could not read image file: {image_path}")
        return self.process_frame(frame, lane)

    def process_rfid(self, tag: str, lane: str = "lane_1") -> CaptureOutcome:
        return self.lanes[lane].submit_rfid(tag).result()

    def write_daily_summary(self, day: date) -> str:
        return self.toll_log.write_daily_summary(day, self.files.output_dir("daily_summaries"))

    def shutdown(self):
        for lane in self.lanes.values():
            lane.shutdown(wait=True)
        self.logger.info("Toll system stopped")
