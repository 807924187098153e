import csv
import os
import threading
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict
from database.models import TransactionRecord
from utils.logger import get_logger

TRANSACTION_HEADER = ["timestamp", "vehicle_key", "payment_method", "amount", "balance_remaining"]


class TollLog:
    """Append-only transaction CSV and error log behind one writer lock."""

    def __init__(self, transaction_path: str, error_path: str,
                 clock: Callable[[], datetime] = datetime.now):
        self.logger = get_logger(__name__)
        self.transaction_path = transaction_path
        self.error_path = error_path
        self.clock = clock
        self._lock = threading.Lock()

        for path in (transaction_path, error_path):
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        with self._lock:
            if not os.path.exists(transaction_path) or os.path.getsize(transaction_path) == 0:
                with open(transaction_path, 'a', newline='') as f:
                    csv.writer(f).writerow(TRANSACTION_HEADER)

    def log_transaction(self, record: TransactionRecord):
        with self._lock:
            with open(self.transaction_path, 'a', newline='') as f:
                csv.writer(f).writerow(record.to_row())

    def log_error(self, message: str):
        timestamp = self.clock().isoformat(timespec="seconds")
        line = ' '.join(str(message).splitlines())
        with self._lock:
            with open(self.error_path, 'a') as f:
                f.write(f"{timestamp}: {line}\n")

    def write_daily_summary(self, day: date, output_dir: str) -> str:
        """Aggregate one day's transactions per payment method into a CSV."""
        prefix = day.isoformat()
        totals: Dict[str, list] = {}

        with self._lock:
            with open(self.transaction_path, 'r', newline='') as f:
                rows = list(csv.DictReader(f))

        for row in rows:
            if not (row.get("timestamp") or "").startswith(prefix):
                continue
            try:
                amount = Decimal(row["amount"])
            except (InvalidOperation, TypeError):
                self.logger.warning(f"Skipping unreadable transaction row: {row}")
                continue
            entry = totals.setdefault(row["payment_method"], [0, Decimal("0")])
            entry[0] += 1
            entry[1] += amount

        os.makedirs(output_dir, exist_ok=True)
        summary_path = os.path.join(output_dir, f"summary_{prefix}.csv")

        with open(summary_path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(["payment_method", "transactions", "total_amount"])
            for method in sorted(totals):
                count, amount = totals[method]
                writer.writerow([method, count, f"{amount:.2f}"])
            writer.writerow([
                "total",
                sum(count for count, _ in totals.values()),
                f"{sum((amount for _, amount in totals.values()), Decimal('0')):.2f}",
            ])

        self.logger.info(f"Wrote daily summary for {prefix}: {summary_path}")
        return summary_path
