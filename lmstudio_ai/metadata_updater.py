"""
Generate description sidecars for images with a vision-capable model.
"""

import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from tqdm import tqdm

from .ai_providers import AiProvider
from .config import AppConfig
from .image_preferences import get_ai_meta_language, get_image_directories
from .image_processor import ImageProcessor
from .logging_setup import get_logger
from .metadata_scanner import iter_image_files
from .preferences import PreferenceResolver
from .prompt_templates import IMAGE_DESCRIPTION_INSTRUCTIONS, build_instructions
from .session import SessionMode
from .sidecars import (
    KEYWORDS_SIDECAR,
    Description,
    read_description,
    read_legacy_keywords,
    remove_sidecar,
    write_description,
)
from .utils import extract_json

logger = get_logger(__name__)


@dataclass
class UpdateStats:
    """Counters for one updater run."""
    total_images: int = 0
    processed_images: int = 0
    successful_images: int = 0
    failed_images: int = 0
    skipped_images: int = 0
    ai_call_failures: int = 0
    start_time: float = 0
    total_time: float = 0

    def to_dict(self) -> Dict[str, Any]:
        result = {k: v for k, v in self.__dict__.items()}
        if self.total_images > 0:
            result['success_rate'] = self.successful_images / self.total_images
        if self.processed_images > 0:
            result['avg_time_per_image'] = self.total_time / self.processed_images
        else:
            result['avg_time_per_image'] = 0
        return result


class MetadataUpdater:
    """Describe images with the LLM and store the result in their sidecars."""

    def __init__(self, config: AppConfig, resolver: Optional[PreferenceResolver] = None,
                 provider: Optional[AiProvider] = None):
        """
        Initialize the updater.

        Args:
            config: Application configuration
            resolver: Resolver for the language and directory preferences
            provider: AI provider; created from the configuration when omitted
        """
        self.config = config
        self.resolver = resolver or PreferenceResolver(config=config)
        self.provider = provider or AiProvider.get_provider(config)
        self.image_processor = ImageProcessor(config)
        self.stats = UpdateStats()

    def describe_image(self, image_path: str, language: str) -> Optional[Description]:
        """
        Ask the model for a description of one image.

        Returns:
            The parsed description, or None when no usable answer came back
        """
        img_b64, _ = self.image_processor.load_image(image_path)
        if not img_b64:
            return None

        instructions = build_instructions(IMAGE_DESCRIPTION_INSTRUCTIONS, language=language)
        try:
            response = self.provider.transform_text(
                instructions, "Describe this image.", images_b64=[img_b64]
            )
        except RuntimeError as e:
            logger.warning(f"AI analysis failed for {image_path}: {str(e)}")
            self.stats.ai_call_failures += 1
            return None

        data = extract_json(response, self.config.debug_mode)
        if not isinstance(data, dict):
            logger.warning(f"AI answer for {image_path} is not a JSON object")
            self.stats.ai_call_failures += 1
            return None
        return Description.from_dict(data)

    @staticmethod
    def _with_legacy_keywords(description: Description, legacy: List[str]) -> Description:
        """Append legacy keywords the model did not already produce."""
        keywords = list(description.keywords or [])
        seen = {k.lower() for k in keywords}
        for keyword in legacy:
            if keyword.lower() not in seen:
                keywords.append(keyword)
                seen.add(keyword.lower())
        return replace(description, keywords=keywords)

    def process_image(self, image_path: str, language: str) -> Dict[str, Any]:
        """
        Describe one image and write its ``description.json`` sidecar.

        Keywords from a legacy ``keywords.json`` are kept and that sidecar is removed.

        Returns:
            Dictionary with processing results
        """
        result = {'path': image_path, 'success': False, 'stage': 'init', 'error': None}

        if not self.config.overwrite_descriptions and read_description(image_path) is not None:
            result['stage'] = 'skipped'
            return result

        try:
            description = self.describe_image(image_path, language)
            if description is None:
                result['stage'] = 'ai_analysis'
                result['error'] = 'Failed to get AI metadata'
                return result

            legacy = read_legacy_keywords(image_path)
            if legacy:
                description = self._with_legacy_keywords(description, legacy)
            write_description(image_path, description)
            if legacy is not None:
                remove_sidecar(image_path, KEYWORDS_SIDECAR)
        except (OSError, ValueError) as e:
            result['stage'] = 'exception'
            result['error'] = str(e)
            logger.error(f"Error processing {image_path}: {str(e)}")
            return result

        result['success'] = True
        result['stage'] = 'complete'
        logger.info(f"Successfully described {image_path}")
        return result

    def run(self, image_directories: Optional[Sequence[str]] = None, recurse: bool = True,
            language: Optional[str] = None, mode: SessionMode = SessionMode.DEFAULT,
            preferences_db_path: Optional[str] = None,
            show_progress: bool = True) -> Dict[str, Any]:
        """
        Describe all images in the directories.

        Args:
            image_directories: Directories to process; the ImageDirectories
                preference when omitted
            recurse: Descend into sub-directories
            language: Metadata language; the AIMetaLanguage preference when omitted
            mode: Session handling for the preference lookups
            preferences_db_path: Preferences database override
            show_progress: Show a progress bar

        Returns:
            Dictionary with processing statistics
        """
        self.stats = UpdateStats()
        self.stats.start_time = time.time()

        directories = get_image_directories(self.resolver, image_directories, mode, preferences_db_path)
        language = get_ai_meta_language(self.resolver, language, mode, preferences_db_path)
        images: List[str] = list(iter_image_files(directories, recurse, self.config.image_extensions))
        self.stats.total_images = len(images)
        logger.info(f"Describing {len(images)} images in {language}")

        for image_path in tqdm(images, desc="Describing images", unit="image", disable=not show_progress):
            result = self.process_image(image_path, language)
            if result['stage'] == 'skipped':
                self.stats.skipped_images += 1
                continue
            self.stats.processed_images += 1
            if result['success']:
                self.stats.successful_images += 1
            else:
                self.stats.failed_images += 1

        self.stats.total_time = time.time() - self.stats.start_time
        logger.info(
            f"Completed: {self.stats.successful_images}/{self.stats.total_images} images described, "
            f"{self.stats.skipped_images} skipped, {self.stats.failed_images} failed "
            f"in {self.stats.total_time:.1f}s"
        )
        return self.stats.to_dict()
