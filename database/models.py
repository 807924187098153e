from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class VehicleClass(Enum):
    CAR = "car"
    TRUCK = "truck"
    BUS = "bus"

    @classmethod
    def parse(cls, value: str) -> "VehicleClass":
        return cls(value.strip().lower())


@dataclass(frozen=True)
class Vehicle:
    plate: str
    rfid: str
    vehicle_class: VehicleClass
    balance: Decimal


@dataclass(frozen=True)
class TransactionRecord:
    timestamp: datetime
    vehicle_key: str
    payment_method: str
    amount: Decimal
    balance_remaining: Decimal

    def to_row(self):
        return [
            self.timestamp.isoformat(timespec="seconds"),
            self.vehicle_key,
            self.payment_method,
            f"{self.amount:.2f}",
            f"{self.balance_remaining:.2f}",
        ]


class OutcomeStatus(Enum):
    BILLED = "billed"
    PLATE_NOT_FOUND = "plate_not_found"
    VEHICLE_UNKNOWN = "vehicle_unknown"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_IMAGE = "invalid_image"
    RECORD_FAILED = "record_failed"


@dataclass
class CaptureOutcome:
    status: OutcomeStatus
    timestamp: datetime
    plate: Optional[str] = None  # recognized text, or the RFID tag for RFID crossings
    plate_valid: bool = False
    ocr_confidence: float = 0.0
    vehicle_key: Optional[str] = None
    amount: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    raw_artifact: Optional[str] = None
    plate_artifact: Optional[str] = None
    message: str = ""

    @property
    def billed(self) -> bool:
        return self.status is OutcomeStatus.BILLED
