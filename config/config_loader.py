import os
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Tuple
from core.errors import ConfigError
from utils.logger import get_logger

RATE_KEYS = {
    "toll_rate_car": "car",
    "toll_rate_truck": "truck",
    "toll_rate_bus": "bus",
}

DEFAULT_SECTIONS: List[Tuple[str, List[Tuple[str, str]]]] = [
    ("Toll Rates", [
        ("toll_rate_car", "50.0"),
        ("toll_rate_truck", "100.0"),
        ("toll_rate_bus", "75.0"),
    ]),
    ("Camera Settings", [
        ("camera_resolution_width", "1920"),
        ("camera_resolution_height", "1080"),
        ("camera_fps", "30"),
    ]),
    ("Plate Detection", [
        ("detector_backend", "cascade"),
        ("detector_model_path", ""),
        ("plate_min_confidence", "0.5"),
    ]),
    ("OCR", [
        ("ocr_languages", "en"),
        ("ocr_gpu", "false"),
    ]),
    ("Billing", [
        ("allow_negative_balance", "false"),
        ("negative_balance_limit", "0"),
    ]),
    ("Lanes", [
        ("lanes", "1"),
    ]),
    ("MongoDB transaction mirror", [
        ("mongodb_enabled", "false"),
        ("mongodb_connection_string", "mongodb://localhost:27017/"),
        ("mongodb_database_name", "toll_system"),
        ("mongodb_transactions_collection", "transactions"),
    ]),
]

POSITIVE_INT_KEYS = ("camera_resolution_width", "camera_resolution_height", "camera_fps", "lanes")
BOOL_KEYS = ("ocr_gpu", "allow_negative_balance", "mongodb_enabled")
DETECTOR_BACKENDS = ("cascade", "yolo")


def _parse_decimal(key: str, value: str) -> Decimal:
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise ConfigError(f"{key} must be a decimal number, got '{value}'")
    if not number.is_finite() or number < 0:
        raise ConfigError(f"{key} must be a non-negative number, got '{value}'")
    return number


def _parse_positive_int(key: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{value}'")
    if number <= 0:
        raise ConfigError(f"{key} must be positive, got {number}")
    return number


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{key} must be a boolean, got '{value}'")


class ConfigLoader:
    logger = get_logger(__name__)

    @staticmethod
    def default_values() -> Dict[str, str]:
        return {key: value for _, entries in DEFAULT_SECTIONS for key, value in entries}

    @staticmethod
    def write_default_config(config_file: str):
        directory = os.path.dirname(config_file)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(config_file, 'w') as f:
            for index, (title, entries) in enumerate(DEFAULT_SECTIONS):
                if index:
                    f.write("\n")
                f.write(f"# {title}\n")
                for key, value in entries:
                    f.write(f"{key}={value}\n")

        ConfigLoader.logger.info(f"Created default config: {config_file}")

    @staticmethod
    def read_pairs(config_file: str) -> Dict[str, str]:
        pairs = {}
        with open(config_file, 'r') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' not in line:
                    ConfigLoader.logger.warning(
                        f"{config_file}:{line_number}: ignoring line without '='")
                    continue
                key, value = line.split('=', 1)
                pairs[key.strip()] = value.strip()
        return pairs

    @staticmethod
    def load_config(config_file: str = "ai_toll_system/config/config.txt") -> Dict:
        defaults = ConfigLoader.default_values()

        if not os.path.exists(config_file):
            ConfigLoader.write_default_config(config_file)
            raw = dict(defaults)
        else:
            raw = ConfigLoader.read_pairs(config_file)
            for key, value in defaults.items():
                if key not in raw and key not in RATE_KEYS:
                    raw[key] = value

        return ConfigLoader.parse(raw)

    @staticmethod
    def parse(raw: Dict[str, str]) -> Dict:
        defaults = ConfigLoader.default_values()
        config = {"toll_rates": {}}

        for key, value in raw.items():
            if key in RATE_KEYS:
                config["toll_rates"][RATE_KEYS[key]] = _parse_decimal(key, value)
            elif key in POSITIVE_INT_KEYS:
                config[key] = _parse_positive_int(key, value)
            elif key in BOOL_KEYS:
                config[key] = _parse_bool(key, value)
            elif key == "negative_balance_limit":
                config[key] = _parse_decimal(key, value)
            elif key == "plate_min_confidence":
                try:
                    threshold = float(value)
                except ValueError:
                    raise ConfigError(f"{key} must be a number, got '{value}'")
                if not 0.0 <= threshold <= 1.0:
                    raise ConfigError(f"{key} must be within [0, 1], got {threshold}")
                config[key] = threshold
            elif key == "detector_backend":
                if value.lower() not in DETECTOR_BACKENDS:
                    raise ConfigError(f"{key} must be one of {', '.join(DETECTOR_BACKENDS)}")
                config[key] = value.lower()
            elif key == "ocr_languages":
                languages = [lang.strip() for lang in value.split(',') if lang.strip()]
                if not languages:
                    raise ConfigError(f"{key} must name at least one language")
                config[key] = languages
            elif key in defaults:
                config[key] = value
            else:
                ConfigLoader.logger.warning(f"Ignoring unknown config key: {key}")

        return config
