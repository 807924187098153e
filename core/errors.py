from decimal import Decimal


class TollSystemError(Exception):
    pass


class ConfigError(TollSystemError):
    """Invalid or incomplete configuration; aborts startup."""


class InvalidImage(TollSystemError):
    """Frame is empty, corrupt or has zero dimensions."""


class DetectorUnavailable(TollSystemError):
    """Plate detector model could not be loaded."""


class OcrUnavailable(TollSystemError):
    """OCR engine could not be initialised."""


class UnknownVehicle(TollSystemError):
    def __init__(self, vehicle_key: str):
        super().__init__(f"No registered vehicle for key '{vehicle_key}'")
        self.vehicle_key = vehicle_key


class InsufficientFunds(TollSystemError):
    def __init__(self, vehicle_key: str, balance: Decimal, amount: Decimal):
        super().__init__(
            f"Insufficient balance for {vehicle_key}: balance {balance}, toll {amount}")
        self.vehicle_key = vehicle_key
        self.balance = balance
        self.amount = amount
