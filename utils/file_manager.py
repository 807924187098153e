import os
from utils.logger import get_logger


class FileManager:
    DIRECTORIES = [
        "config",
        "data",
        "data/tessdata",
        "logs",
        "output/captured_plates",
        "output/processed_images",
        "output/daily_summaries",
    ]

    def __init__(self, base_dir: str = "ai_toll_system"):
        self.logger = get_logger(__name__)
        self.base_dir = base_dir
        self._create_directory_structure()

    def _create_directory_structure(self):
        for directory in self.DIRECTORIES:
            path = os.path.join(self.base_dir, directory)
            if not os.path.exists(path):
                os.makedirs(path)
                self.logger.info(f"Created directory: {path}")

    def config_path(self, filename: str) -> str:
        return os.path.join(self.base_dir, "config", filename)

    def data_path(self, filename: str) -> str:
        return os.path.join(self.base_dir, "data", filename)

    def log_path(self, filename: str) -> str:
        return os.path.join(self.base_dir, "logs", filename)

    def output_dir(self, subdir: str) -> str:
        return os.path.join(self.base_dir, "output", subdir)
