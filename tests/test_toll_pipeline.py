"""
Tests for the toll pipeline

Covers every terminal state of a capture event, its log line and its audit artifacts.
"""

import os
import numpy as np
from decimal import Decimal
from unittest.mock import MagicMock

from conftest import read_lines
from core.detection.plate_localizer import PlateCandidate
from core.preprocessing.image_preprocessor import ImagePreprocessor
from database.models import OutcomeStatus


def transaction_lines(toll_log):
    # first line is the header
    return read_lines(toll_log.transaction_path)[1:]


def error_lines(toll_log):
    return read_lines(toll_log.error_path)


class TestBilledCrossing:
    """Clear plate, registered vehicle, enough balance"""

    def test_outcome_is_billed(self, make_pipeline, frame, registry):
        pipeline = make_pipeline(text="ABC123")

        outcome = pipeline.process_frame(frame)

        assert outcome.status is OutcomeStatus.BILLED
        assert outcome.amount == Decimal("50.0")
        assert outcome.balance == Decimal("450.00")
        assert registry.lookup("ABC123").balance == Decimal("450.00")

    def test_one_transaction_line_and_no_error(self, make_pipeline, frame, toll_log):
        make_pipeline(text="ABC123").process_frame(frame)

        lines = transaction_lines(toll_log)
        assert len(lines) == 1
        assert lines[0].split(",")[1:] == ["ABC123", "balance", "50.00", "450.00"]
        assert error_lines(toll_log) == []

    def test_raw_and_crop_artifacts_written(self, make_pipeline, frame, artifacts):
        outcome = make_pipeline(text="ABC123").process_frame(frame)

        assert os.path.exists(outcome.raw_artifact)
        assert os.path.exists(outcome.plate_artifact)
        assert len(os.listdir(artifacts.frames_folder)) == 1
        assert len(os.listdir(artifacts.plates_folder)) == 1

    def test_noisy_ocr_text_is_normalized(self, make_pipeline, frame):
        outcome = make_pipeline(text=" abc-123 ").process_frame(frame)

        assert outcome.status is OutcomeStatus.BILLED
        assert outcome.plate == "ABC123"
        assert outcome.plate_valid

    def test_ocr_receives_the_plate_crop(self, make_pipeline, frame):
        pipeline = make_pipeline(text="ABC123")
        pipeline.process_frame(frame)

        crop = pipeline.fake_ocr.images[0]
        assert crop.shape[:2] == (60, 200)

    def test_transaction_is_mirrored(self, make_pipeline, frame):
        mirror = MagicMock()
        make_pipeline(text="ABC123", mirror=mirror).process_frame(frame)

        mirror.save_transaction.assert_called_once()
        record = mirror.save_transaction.call_args[0][0]
        assert record.vehicle_key == "ABC123"


class TestPlateNotFound:
    """No candidate clears the confidence threshold"""

    def test_no_candidates(self, make_pipeline, frame, toll_log, artifacts):
        outcome = make_pipeline(candidates=[]).process_frame(frame)

        assert outcome.status is OutcomeStatus.PLATE_NOT_FOUND
        assert transaction_lines(toll_log) == []
        assert len(error_lines(toll_log)) == 1
        assert "No license plate detected" in error_lines(toll_log)[0]
        assert os.path.exists(outcome.raw_artifact)
        assert outcome.plate_artifact is None
        assert os.listdir(artifacts.plates_folder) == []

    def test_low_confidence_candidates_rejected(self, make_pipeline, frame):
        pipeline = make_pipeline(candidates=[PlateCandidate((220, 200, 420, 260), 0.2)])

        outcome = pipeline.process_frame(frame)

        assert outcome.status is OutcomeStatus.PLATE_NOT_FOUND
        assert pipeline.fake_ocr.images == []


class TestVehicleUnknown:
    def test_unregistered_plate(self, make_pipeline, frame, registry, toll_log):
        before = registry.snapshot()

        outcome = make_pipeline(text="ZZZ999").process_frame(frame)

        assert outcome.status is OutcomeStatus.VEHICLE_UNKNOWN
        assert outcome.plate == "ZZZ999"
        assert registry.snapshot() == before
        assert transaction_lines(toll_log) == []
        assert len(error_lines(toll_log)) == 1
        assert outcome.plate_artifact is not None

    def test_empty_ocr_result(self, make_pipeline, frame, toll_log):
        outcome = make_pipeline(text="").process_frame(frame)

        assert outcome.status is OutcomeStatus.VEHICLE_UNKNOWN
        assert outcome.plate == ""
        assert len(error_lines(toll_log)) == 1


class TestInsufficientFunds:
    def test_balance_below_rate(self, make_pipeline, frame, registry, toll_log):
        outcome = make_pipeline(text="TRK9001").process_frame(frame)

        assert outcome.status is OutcomeStatus.INSUFFICIENT_FUNDS
        assert outcome.amount == Decimal("100.0")
        assert registry.lookup("TRK9001").balance == Decimal("80.00")
        assert transaction_lines(toll_log) == []
        assert "Insufficient balance" in error_lines(toll_log)[0]

    def test_exact_balance_is_billed_to_zero(self, make_pipeline, frame, registry):
        outcome = make_pipeline(text="BUS4242").process_frame(frame)

        assert outcome.status is OutcomeStatus.BILLED
        assert registry.lookup("BUS4242").balance == Decimal("0")


class TestUnwritableLogs:
    def test_charge_reversed_when_transaction_not_recorded(self, make_pipeline, frame, registry, toll_log):
        os.remove(toll_log.transaction_path)
        os.mkdir(toll_log.transaction_path)

        outcome = make_pipeline(text="ABC123").process_frame(frame)

        assert outcome.status is OutcomeStatus.RECORD_FAILED
        assert outcome.balance == Decimal("500.00")
        assert registry.lookup("ABC123").balance == Decimal("500.00")
        assert "not recorded" in error_lines(toll_log)[0]

    def test_error_log_failure_still_returns_outcome(self, make_pipeline, frame, toll_log):
        os.mkdir(toll_log.error_path)

        outcome = make_pipeline(candidates=[]).process_frame(frame)

        assert outcome.status is OutcomeStatus.PLATE_NOT_FOUND
        assert "No license plate detected" in outcome.message


class TestInvalidImage:
    def test_empty_image(self, make_pipeline, toll_log, artifacts):
        outcome = make_pipeline().process_frame(np.zeros((0, 0, 3), dtype=np.uint8))

        assert outcome.status is OutcomeStatus.INVALID_IMAGE
        assert len(error_lines(toll_log)) == 1
        assert os.listdir(artifacts.frames_folder) == []

    def test_missing_image(self, make_pipeline):
        outcome = make_pipeline().process_frame(None)

        assert outcome.status is OutcomeStatus.INVALID_IMAGE


class TestDownscaledFrames:
    def test_region_mapped_back_to_source_frame(self, make_pipeline):
        pipeline = make_pipeline(candidates=[PlateCandidate((100, 50, 200, 80), 0.9)])
        pipeline.preprocessor = ImagePreprocessor(max_size=(320, 240))
        frame = np.zeros((480, 640, 3), dtype=np.uint8)

        outcome = pipeline.process_frame(frame)

        assert outcome.status is OutcomeStatus.BILLED
        assert pipeline.fake_ocr.images[0].shape[:2] == (60, 200)


class TestRfidCrossing:
    def test_billed_by_tag(self, make_pipeline, registry, toll_log):
        outcome = make_pipeline().process_rfid("RFID001")

        assert outcome.status is OutcomeStatus.BILLED
        assert outcome.vehicle_key == "RFID001"
        assert registry.lookup("ABC123").balance == Decimal("450.00")
        assert transaction_lines(toll_log)[0].split(",")[1] == "RFID001"
        assert outcome.raw_artifact is None

    def test_unknown_tag(self, make_pipeline, toll_log):
        outcome = make_pipeline().process_rfid("NOPE")

        assert outcome.status is OutcomeStatus.VEHICLE_UNKNOWN
        assert len(error_lines(toll_log)) == 1


class TestOneLogLinePerOutcome:
    def test_mixed_sequence(self, make_pipeline, frame, toll_log):
        make_pipeline(text="ABC123").process_frame(frame)
        make_pipeline(candidates=[]).process_frame(frame)
        make_pipeline(text="ZZZ999").process_frame(frame)
        make_pipeline(text="TRK9001").process_frame(frame)
        make_pipeline().process_frame(None)

        assert len(transaction_lines(toll_log)) == 1
        assert len(error_lines(toll_log)) == 4
