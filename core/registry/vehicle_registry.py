import csv
import os
import threading
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Union
from core.errors import InsufficientFunds, UnknownVehicle
from core.recognition.plate_recognizer import normalize_plate
from database.models import Vehicle, VehicleClass
from utils.logger import get_logger


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class _Account:
    __slots__ = ("vehicle", "lock")

    def __init__(self, vehicle: Vehicle):
        self.vehicle = vehicle
        self.lock = threading.Lock()


UNDECODABLE = "\ufffd"


def normalize_rfid(tag: str) -> str:
    return (tag or '').strip().upper()


class VehicleRegistry:
    """Vehicles indexed by plate and by RFID tag; both keys share one account."""

    def __init__(self, allow_negative_balance: bool = False,
                 negative_balance_limit: Decimal = Decimal("0"), error_log=None):
        self.logger = get_logger(__name__)
        self.allow_negative_balance = allow_negative_balance
        self.negative_balance_limit = Decimal(negative_balance_limit)
        self.error_log = error_log

        self._lock = ReadWriteLock()
        self._by_plate: Dict[str, _Account] = {}
        self._by_rfid: Dict[str, _Account] = {}

    def _reject_row(self, line_number: int, reason: str):
        message = f"Skipping registry row {line_number}: {reason}"
        self.logger.warning(message)
        if self.error_log is not None:
            self.error_log.log_error(message)

    def _parse_row(self, line_number: int, row: List[str]) -> Optional[Vehicle]:
        if len(row) != 4:
            self._reject_row(line_number, f"expected 4 columns, got {len(row)}")
            return None

        plate, rfid, balance_text, type_text = (field.strip() for field in row)
        plate = normalize_plate(plate)
        rfid = normalize_rfid(rfid)

        if not plate and not rfid:
            self._reject_row(line_number, "neither plate nor RFID tag given")
            return None

        try:
            balance = Decimal(balance_text)
        except InvalidOperation:
            self._reject_row(line_number, f"invalid balance '{balance_text}'")
            return None
        if not balance.is_finite() or balance < 0:
            self._reject_row(line_number, f"invalid balance '{balance_text}'")
            return None

        try:
            vehicle_class = VehicleClass.parse(type_text)
        except ValueError:
            self._reject_row(line_number, f"unknown vehicle type '{type_text}'")
            return None

        return Vehicle(plate=plate, rfid=rfid, vehicle_class=vehicle_class, balance=balance)

    def load(self, source: Union[str, Iterable[str]]) -> int:
        """
        Replace the registry contents with the rows of ``source``.

        ``source`` is a CSV path or an iterable of lines laid out as
        ``plate,rfid,balance,type`` with a header row. Malformed and duplicate
        rows are skipped. A missing file leaves the registry empty.
        """
        if isinstance(source, str):
            if not os.path.exists(source):
                message = f"Could not open registered vehicles file: {source}"
                self.logger.error(message)
                if self.error_log is not None:
                    self.error_log.log_error(message)
                with self._lock.write():
                    self._by_plate, self._by_rfid = {}, {}
                return 0
            with open(source, 'r', newline='', encoding='utf-8', errors='replace') as f:
                return self._load_lines(f)
        return self._load_lines(source)

    def _load_lines(self, lines: Iterable[str]) -> int:
        by_plate: Dict[str, _Account] = {}
        by_rfid: Dict[str, _Account] = {}

        for line_number, line in enumerate(lines, start=1):
            if line_number == 1:
                continue

            # records never span lines
            try:
                row = next(csv.reader([line]), [])
            except csv.Error as e:
                self._reject_row(line_number, f"unreadable row ({e})")
                continue

            if not row or all(not field.strip() for field in row):
                continue
            if any(UNDECODABLE in field for field in row):
                self._reject_row(line_number, "row contains undecodable bytes")
                continue

            vehicle = self._parse_row(line_number, row)
            if vehicle is None:
                continue

            if vehicle.plate and vehicle.plate in by_plate:
                self._reject_row(line_number, f"duplicate plate {vehicle.plate}")
                continue
            if vehicle.rfid and vehicle.rfid in by_rfid:
                self._reject_row(line_number, f"duplicate RFID tag {vehicle.rfid}")
                continue

            account = _Account(vehicle)
            if vehicle.plate:
                by_plate[vehicle.plate] = account
            if vehicle.rfid:
                by_rfid[vehicle.rfid] = account

        with self._lock.write():
            self._by_plate = by_plate
            self._by_rfid = by_rfid

        count = len({id(a) for a in list(by_plate.values()) + list(by_rfid.values())})
        self.logger.info(f"Loaded {count} registered vehicles")
        return count

    def _find(self, key: str) -> Optional[_Account]:
        plate = normalize_plate(key)
        if plate and plate in self._by_plate:
            return self._by_plate[plate]
        rfid = normalize_rfid(key)
        if rfid:
            return self._by_rfid.get(rfid)
        return None

    def lookup(self, key: str) -> Optional[Vehicle]:
        """Find a vehicle by plate first, then by RFID tag."""
        with self._lock.read():
            account = self._find(key)
            return account.vehicle if account is not None else None

    def debit(self, key: str, amount: Decimal) -> Decimal:
        """Subtract ``amount`` from the vehicle's balance and return the new balance."""
        with self._lock.read():
            account = self._find(key)
            if account is None:
                raise UnknownVehicle(key)

            with account.lock:
                balance = account.vehicle.balance
                new_balance = balance - amount
                floor = -self.negative_balance_limit if self.allow_negative_balance else Decimal("0")
                if new_balance < floor:
                    raise InsufficientFunds(key, balance, amount)
                account.vehicle = replace(account.vehicle, balance=new_balance)

        return new_balance

    def credit(self, key: str, amount: Decimal) -> Decimal:
        """Give back a debit whose transaction could not be recorded."""
        with self._lock.read():
            account = self._find(key)
            if account is None:
                raise UnknownVehicle(key)

            with account.lock:
                new_balance = account.vehicle.balance + amount
                account.vehicle = replace(account.vehicle, balance=new_balance)

        self.logger.warning(f"Credited {amount} back to {key}, balance {new_balance}")
        return new_balance

    def vehicle_classes(self):
        with self._lock.read():
            accounts = list(self._by_plate.values()) + list(self._by_rfid.values())
            return {a.vehicle.vehicle_class for a in accounts}

    def snapshot(self) -> Dict[str, Vehicle]:
        with self._lock.read():
            vehicles = {f"plate:{k}": a.vehicle for k, a in self._by_plate.items()}
            vehicles.update({f"rfid:{k}": a.vehicle for k, a in self._by_rfid.items()})
            return vehicles

    def __len__(self):
        with self._lock.read():
            return len({id(a) for a in list(self._by_plate.values()) + list(self._by_rfid.values())})
