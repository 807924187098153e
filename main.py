#!/usr/bin/env python3
import argparse
import sys
from datetime import date
from core.errors import ConfigError, DetectorUnavailable, OcrUnavailable
from system.toll_system import TollSystem
from utils.logger import get_logger


def format_outcome(source: str, outcome) -> str:
    line = f"{source}: {outcome.status.value}"
    if outcome.vehicle_key:
        line += f" vehicle={outcome.vehicle_key}"
    if outcome.amount is not None:
        line += f" amount={outcome.amount:.2f} balance={outcome.balance:.2f}"
    return line


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Automated toll checkpoint")
    parser.add_argument("images", nargs="*", help="Vehicle images to process")
    parser.add_argument("--base-dir", default="ai_toll_system", help="Working directory for config, logs and artifacts")
    parser.add_argument("--config", default=None, help="Path to config file")
    parser.add_argument("--rfid", action="append", default=[], help="Bill a vehicle by RFID tag")
    parser.add_argument("--summary", type=date.fromisoformat, default=None, help="Write the daily summary for YYYY-MM-DD")
    args = parser.parse_args(argv)

    logger = get_logger(__name__)
    try:
        system = TollSystem(base_dir=args.base_dir, config_file=args.config)
    except (ConfigError, DetectorUnavailable, OcrUnavailable) as e:
        logger.error(f"Startup failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        for image_path in args.images:
            print(format_outcome(image_path, system.process_image_file(image_path)))
        for tag in args.rfid:
            print(format_outcome(f"rfid {tag}", system.process_rfid(tag)))
        if args.summary:
            print(system.write_daily_summary(args.summary))
    finally:
        system.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
