from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping
from core.errors import ConfigError
from core.registry.vehicle_registry import VehicleRegistry
from database.models import TransactionRecord, Vehicle, VehicleClass
from utils.logger import get_logger


class RateTable:
    """Toll amount per vehicle class; read-only once built."""

    def __init__(self, rates: Mapping[VehicleClass, Decimal]):
        for vehicle_class, rate in rates.items():
            if rate < 0:
                raise ConfigError(f"Toll rate for {vehicle_class.value} must be non-negative")
        self._rates = MappingProxyType(dict(rates))

    @classmethod
    def from_config(cls, config: Dict) -> "RateTable":
        configured = config.get("toll_rates", {})
        rates = {}
        for vehicle_class in VehicleClass:
            if vehicle_class.value not in configured:
                raise ConfigError(f"Missing toll rate: toll_rate_{vehicle_class.value}")
            rates[vehicle_class] = Decimal(configured[vehicle_class.value])
        return cls(rates)

    def validate(self, classes: Iterable[VehicleClass]):
        missing = sorted(c.value for c in set(classes) if c not in self._rates)
        if missing:
            raise ConfigError(f"No toll rate configured for: {', '.join(missing)}")

    def rate_for(self, vehicle_class: VehicleClass) -> Decimal:
        return self._rates[vehicle_class]

    def as_dict(self) -> Dict[VehicleClass, Decimal]:
        return dict(self._rates)


class BillingEngine:
    def __init__(self, registry: VehicleRegistry, rate_table: RateTable,
                 clock: Callable[[], datetime] = datetime.now):
        self.logger = get_logger(__name__)
        self.registry = registry
        self.rate_table = rate_table
        self.clock = clock

    def charge(self, vehicle: Vehicle, vehicle_key: str = None,
               payment_method: str = "balance") -> TransactionRecord:
        """Debit the class rate from the vehicle's account; raises InsufficientFunds."""
        account_key = vehicle.plate or vehicle.rfid
        key = vehicle_key or account_key
        amount = self.rate_table.rate_for(vehicle.vehicle_class)

        balance = self.registry.debit(account_key, amount)

        record = TransactionRecord(
            timestamp=self.clock(),
            vehicle_key=key,
            payment_method=payment_method,
            amount=amount,
            balance_remaining=balance,
        )
        self.logger.info(f"Charged {amount} to {key} ({vehicle.vehicle_class.value}), balance {balance}")
        return record

    def refund(self, vehicle: Vehicle, amount: Decimal) -> Decimal:
        return self.registry.credit(vehicle.plate or vehicle.rfid, amount)
