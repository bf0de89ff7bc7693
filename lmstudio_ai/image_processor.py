"""
Prepare images for AI analysis.
"""

import base64
import io
import os
from typing import Any, Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .config import AppConfig
from .logging_setup import get_logger

logger = get_logger(__name__)

SUPPORTED_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tiff", ".tif")


def validate_image_file(image_path: str) -> str:
    """
    Check that a path points to an existing image of a supported format.

    Args:
        image_path: Path to the image

    Returns:
        The absolute path

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the extension is not a supported image format
    """
    path = os.path.abspath(os.path.expanduser(image_path))
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.lower().endswith(SUPPORTED_IMAGE_EXTENSIONS):
        raise ValueError(
            f"Invalid image format: {os.path.splitext(path)[1] or path}. "
            f"Supported formats: {', '.join(ext[1:] for ext in SUPPORTED_IMAGE_EXTENSIONS)}"
        )
    return path


class ImageProcessor:
    """Class to handle image processing for AI analysis."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.max_resolution = config.max_image_resolution

    def prepare_image_for_ai(self, img: Image.Image) -> Optional[str]:
        """
        Resize an image if needed and encode it as base64 JPEG.

        Args:
            img: PIL Image object

        Returns:
            Base64-encoded image string if successful, None otherwise
        """
        if not img:
            return None

        try:
            img_copy = img.copy()

            if img_copy.width * img_copy.height > 20000000:  # ~20MP
                logger.debug(f"Image very large ({img_copy.width}x{img_copy.height}), applying aggressive downscaling")
                max_resolution = min(self.max_resolution, 800)
            else:
                max_resolution = self.max_resolution

            if max_resolution and (img_copy.width > max_resolution or img_copy.height > max_resolution):
                img_copy.thumbnail((max_resolution, max_resolution))
                logger.debug(f"Resized image to {img_copy.width}x{img_copy.height}")

            if img_copy.mode != 'RGB':
                img_copy = img_copy.convert('RGB')

            buffer = io.BytesIO()
            img_copy.save(buffer, format="JPEG", quality=85)
            img_b64 = base64.b64encode(buffer.getvalue()).decode('utf-8')

            img_copy.close()
            buffer.close()

            logger.debug(f"Prepared image for AI analysis (base64 size: {len(img_b64)} chars)")
            return img_b64
        except (OSError, ValueError) as e:
            logger.error(f"Error preparing image for AI: {str(e)}")
            return None

    def get_image_dimensions(self, img: Image.Image) -> Dict[str, Any]:
        if not img:
            return {}
        return {
            'width': img.width,
            'height': img.height,
            'format': img.format,
            'mode': img.mode,
            'aspect_ratio': round(img.width / img.height, 2) if img.height > 0 else 0
        }

    def load_image(self, image_path: str) -> Tuple[Optional[str], Dict[str, Any]]:
        """
        Validate, open and encode an image file.

        Args:
            image_path: Path to the image

        Returns:
            Tuple of (base64-encoded JPEG or None, image dimensions)

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the extension is not supported
        """
        path = validate_image_file(image_path)
        try:
            with Image.open(path) as img:
                img.load()
                return self.prepare_image_for_ai(img), self.get_image_dimensions(img)
        except (UnidentifiedImageError, OSError) as e:
            logger.error(f"Could not open image {path}: {str(e)}")
            return None, {}
