import cv2
import numpy as np
from dataclasses import dataclass
from typing import Tuple
from core.errors import InvalidImage
from utils.image_utils import enhance_image_contrast, fit_within, to_grayscale
from utils.logger import get_logger


@dataclass
class PreprocessedImage:
    image: np.ndarray
    scale: float  # normalized size / source size

    def to_source(self, bbox: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
        """Map a box from normalized coordinates back onto the source frame."""
        if self.scale == 1.0:
            return bbox
        x1, y1, x2, y2 = bbox
        return (int(np.floor(x1 / self.scale)), int(np.floor(y1 / self.scale)),
                int(np.ceil(x2 / self.scale)), int(np.ceil(y2 / self.scale)))


class ImagePreprocessor:
    def __init__(self, max_size: Tuple[int, int] = (1920, 1080)):
        self.logger = get_logger(__name__)
        self.max_size = max_size

    def validate(self, image) -> np.ndarray:
        if image is None:
            raise InvalidImage("image is missing")
        if not isinstance(image, np.ndarray):
            raise InvalidImage(f"expected an image array, got {type(image).__name__}")
        if image.size == 0 or image.ndim not in (2, 3) or min(image.shape[:2]) == 0:
            raise InvalidImage(f"image has no pixels (shape={image.shape})")
        if image.ndim == 3 and image.shape[2] not in (1, 3, 4):
            raise InvalidImage(f"unsupported channel count {image.shape[2]}")
        if image.dtype != np.uint8:
            raise InvalidImage(f"unsupported pixel type {image.dtype}")
        return image[:, :, 0] if image.ndim == 3 and image.shape[2] == 1 else image

    def preprocess(self, image: np.ndarray) -> PreprocessedImage:
        image = self.validate(image)
        resized, scale = fit_within(image, self.max_size)

        if scale != 1.0:
            self.logger.debug(f"Downscaled frame {image.shape[1]}x{image.shape[0]} by {scale:.3f}")

        denoised = cv2.bilateralFilter(to_grayscale(resized), 9, 75, 75)
        return PreprocessedImage(image=enhance_image_contrast(denoised), scale=scale)
