import itertools
import os
import threading
import time
import cv2
import numpy as np
from utils.logger import get_logger


class ArtifactStore:
    def __init__(self, frames_folder: str, plates_folder: str):
        self.logger = get_logger(__name__)
        self.frames_folder = frames_folder
        self.plates_folder = plates_folder
        self._counter = itertools.count()
        self._lock = threading.Lock()

        for folder in (frames_folder, plates_folder):
            if not os.path.exists(folder):
                os.makedirs(folder)
                self.logger.info(f"Created storage folder: {folder}")

    def new_stamp(self) -> str:
        # nanosecond clock plus a counter keeps stamps unique across lanes
        with self._lock:
            return f"{time.time_ns()}_{next(self._counter)}"

    def _write(self, path: str, image: np.ndarray) -> str:
        if not cv2.imwrite(path, image):
            raise IOError(f"Failed to write image: {path}")
        return path

    def save_raw_frame(self, image: np.ndarray, stamp: str) -> str:
        return self._write(os.path.join(self.frames_folder, f"vehicle_{stamp}.jpg"), image)

    def save_plate_crop(self, image: np.ndarray, stamp: str) -> str:
        return self._write(os.path.join(self.plates_folder, f"plate_{stamp}.jpg"), image)
