"""
Shared fixtures: scripted vision backends and a pipeline wired to tmp_path.
"""

import os
import tempfile

os.environ.setdefault("TOLL_SYSTEM_LOG_DIR", tempfile.mkdtemp(prefix="toll_logs_"))

import numpy as np
import pytest
from decimal import Decimal

from core.billing.billing_engine import BillingEngine, RateTable
from core.detection.plate_localizer import PlateCandidate, PlateDetectorBackend, PlateLocalizer
from core.preprocessing.image_preprocessor import ImagePreprocessor
from core.recognition.plate_recognizer import OcrEngine, OcrFragment, PlateRecognizer
from core.registry.vehicle_registry import VehicleRegistry
from database.artifact_store import ArtifactStore
from database.models import VehicleClass
from database.toll_log import TollLog
from system.toll_pipeline import TollPipeline


REGISTRY_CSV = """plate,rfid,balance,type
ABC123,RFID001,500.00,car
TRK9001,RFID002,80.00,truck
BUS4242,RFID003,75.00,bus
"""


class FakeDetector(PlateDetectorBackend):
    """Returns the same scripted candidates for every image."""

    def __init__(self, candidates=None):
        self.candidates = list(candidates or [])
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        return list(self.candidates)


class FakeOcr(OcrEngine):
    def __init__(self, text="", confidence=0.9):
        self.text = text
        self.confidence = confidence
        self.images = []

    def read(self, image):
        self.images.append(image)
        if not self.text:
            return []
        return [OcrFragment(bbox=(0, 0, 10, 10), text=self.text, confidence=self.confidence)]


def make_frame(width=640, height=480):
    frame = np.full((height, width, 3), 40, dtype=np.uint8)
    frame[200:260, 220:420] = 255
    return frame


@pytest.fixture
def frame():
    return make_frame()


@pytest.fixture
def rates():
    return RateTable({
        VehicleClass.CAR: Decimal("50.0"),
        VehicleClass.TRUCK: Decimal("100.0"),
        VehicleClass.BUS: Decimal("75.0"),
    })


@pytest.fixture
def toll_log(tmp_path):
    return TollLog(str(tmp_path / "logs" / "transaction_log.csv"),
                   str(tmp_path / "logs" / "error_log.txt"))


@pytest.fixture
def registry(toll_log):
    registry = VehicleRegistry(error_log=toll_log)
    registry.load(REGISTRY_CSV.splitlines())
    return registry


@pytest.fixture
def artifacts(tmp_path):
    return ArtifactStore(str(tmp_path / "output" / "processed_images"),
                         str(tmp_path / "output" / "captured_plates"))


@pytest.fixture
def make_pipeline(registry, rates, toll_log, artifacts):
    def build(candidates=None, text="ABC123", confidence=0.9, mirror=None):
        detector = FakeDetector(candidates if candidates is not None
                                else [PlateCandidate((220, 200, 420, 260), 0.95)])
        ocr = FakeOcr(text, confidence)
        pipeline = TollPipeline(
            preprocessor=ImagePreprocessor(),
            localizer=PlateLocalizer(detector, min_confidence=0.5),
            recognizer=PlateRecognizer(ocr),
            registry=registry,
            billing=BillingEngine(registry, rates),
            toll_log=toll_log,
            artifacts=artifacts,
            transaction_mirror=mirror,
        )
        pipeline.fake_detector = detector
        pipeline.fake_ocr = ocr
        return pipeline
    return build


def read_lines(path):
    if not os.path.exists(path):
        return []
    with open(path) as f:
        return [line.rstrip("\n") for line in f if line.strip()]
