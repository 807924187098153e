import cv2
import numpy as np
from datetime import datetime
from typing import Callable, Optional
from core.billing.billing_engine import BillingEngine
from core.detection.plate_localizer import PlateLocalizer
from core.errors import InsufficientFunds, InvalidImage, UnknownVehicle
from core.preprocessing.image_preprocessor import ImagePreprocessor
from core.recognition.plate_recognizer import PlateRecognizer
from core.registry.vehicle_registry import VehicleRegistry
from database.artifact_store import ArtifactStore
from database.models import CaptureOutcome, OutcomeStatus, Vehicle
from database.toll_log import TollLog
from utils.image_utils import crop_to_bounds
from utils.logger import get_logger


class TollPipeline:
    """Runs one capture event from raw frame to bill/reject outcome."""

    def __init__(self, preprocessor: ImagePreprocessor, localizer: PlateLocalizer,
                 recognizer: PlateRecognizer, registry: VehicleRegistry,
                 billing: BillingEngine, toll_log: TollLog, artifacts: ArtifactStore,
                 transaction_mirror=None, clock: Callable[[], datetime] = datetime.now):
        self.logger = get_logger(__name__)
        self.preprocessor = preprocessor
        self.localizer = localizer
        self.recognizer = recognizer
        self.registry = registry
        self.billing = billing
        self.toll_log = toll_log
        self.artifacts = artifacts
        self.transaction_mirror = transaction_mirror
        self.clock = clock

    def _save(self, writer, image: np.ndarray, stamp: str) -> Optional[str]:
        try:
            return writer(image, stamp)
        except (OSError, cv2.error) as e:
            self.logger.error(f"Failed to store audit artifact {stamp}: {e}")
            return None

    def _fail(self, outcome: CaptureOutcome, message: str) -> CaptureOutcome:
        outcome.message = message
        self.logger.warning(message)
        try:
            self.toll_log.log_error(message)
        except OSError as e:
            self.logger.error(f"Failed to write error log: {e}")
        return outcome

    def process_frame(self, frame: np.ndarray) -> CaptureOutcome:
        now = self.clock()

        try:
            prepared = self.preprocessor.preprocess(frame)
        except InvalidImage as e:
            return self._fail(CaptureOutcome(OutcomeStatus.INVALID_IMAGE, now),
                              f"Invalid image rejected: {e}")

        stamp = self.artifacts.new_stamp()
        raw_path = self._save(self.artifacts.save_raw_frame, frame, stamp)

        region = self.localizer.locate(prepared.image)
        if region is None:
            return self._fail(
                CaptureOutcome(OutcomeStatus.PLATE_NOT_FOUND, now, raw_artifact=raw_path),
                f"No license plate detected in image {stamp}")

        plate_image = crop_to_bounds(frame, prepared.to_source(region.bbox))
        plate_path = self._save(self.artifacts.save_plate_crop, plate_image, stamp)

        recognized = self.recognizer.recognize(plate_image)
        outcome = CaptureOutcome(
            OutcomeStatus.VEHICLE_UNKNOWN, now,
            plate=recognized.text,
            plate_valid=recognized.is_valid,
            ocr_confidence=recognized.confidence,
            raw_artifact=raw_path,
            plate_artifact=plate_path,
        )

        vehicle = self.registry.lookup(recognized.text) if recognized.text else None
        if vehicle is None:
            return self._fail(
                outcome,
                f"Unrecognized vehicle: plate '{recognized.text}' in image {stamp}")

        return self._bill(outcome, vehicle, recognized.text)

    def process_rfid(self, tag: str) -> CaptureOutcome:
        outcome = CaptureOutcome(OutcomeStatus.VEHICLE_UNKNOWN, self.clock(), plate=tag)

        vehicle = self.registry.lookup(tag) if tag else None
        if vehicle is None:
            return self._fail(outcome, f"Unrecognized vehicle: RFID tag '{tag}'")

        return self._bill(outcome, vehicle, tag)

    def _bill(self, outcome: CaptureOutcome, vehicle: Vehicle, key: str) -> CaptureOutcome:
        outcome.vehicle_key = key
        try:
            record = self.billing.charge(vehicle, vehicle_key=key)
        except InsufficientFunds as e:
            outcome.status = OutcomeStatus.INSUFFICIENT_FUNDS
            outcome.amount = e.amount
            outcome.balance = e.balance
            return self._fail(outcome, f"Insufficient balance for vehicle {key}: "
                                       f"balance {e.balance:.2f}, toll {e.amount:.2f}")
        except UnknownVehicle:
            return self._fail(outcome, f"Vehicle {key} left the registry before billing")

        try:
            self.toll_log.log_transaction(record)
        except OSError as e:
            outcome.status = OutcomeStatus.RECORD_FAILED
            outcome.amount = record.amount
            try:
                outcome.balance = self.billing.refund(vehicle, record.amount)
            except UnknownVehicle:
                outcome.balance = None
            return self._fail(outcome, f"Transaction for {key} not recorded, charge reversed: {e}")

        if self.transaction_mirror is not None:
            self.transaction_mirror.save_transaction(record)

        outcome.status = OutcomeStatus.BILLED
        outcome.amount = record.amount
        outcome.balance = record.balance_remaining
        outcome.message = f"Billed {record.amount:.2f} to {key}"
        self.logger.info(outcome.message)
        return outcome
