"""
Command-line interface for the LM Studio AI helpers.
"""

import argparse
import json
import sys
from typing import Any, Callable, Dict, List, Optional

from . import image_preferences, lmstudio, system_info
from .ai_providers import AiProvider
from .config import AppConfig, load_config
from .image_index import open_image_index
from .image_processor import validate_image_file
from .logging_setup import setup_logging, get_logger
from .metadata_scanner import find_images
from .metadata_updater import MetadataUpdater
from .preferences import PreferenceResolver
from .session import SessionMode
from .text_transformations import (
    get_text_translation,
    invoke_llm_boolean_evaluation,
    invoke_llm_string_list_evaluation,
    invoke_llm_text_transformation,
    invoke_spell_check,
)
from .utils import get_vector_similarity

logger = get_logger(__name__)


def _preference_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--session-only", action="store_true",
                        help="Only use or change the session value")
    parent.add_argument("--skip-session", action="store_true",
                        help="Ignore the session value")
    parent.add_argument("--clear-session", action="store_true",
                        help="Drop the session value")
    parent.add_argument("--preferences-db",
                        help="Use this preferences database instead of the default one")
    return parent


def _generation_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--model", help="Model to use instead of the configured one")
    parent.add_argument("--temperature", type=float, help="Sampling temperature")
    parent.add_argument("--max-tokens", type=int, help="Maximum tokens to generate, -1 for no limit")
    parent.add_argument("--gpu", type=float, help="GPU offload ratio for loading the model, 0 for CPU only")
    parent.add_argument("--extra-instructions", help="Appended to the built-in instructions")
    return parent


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser with one sub-command per operation.

    Returns:
        Configured parser
    """
    parser = argparse.ArgumentParser(
        prog="lmstudio-ai",
        description="Image metadata preferences, search and text helpers backed by LM Studio"
    )
    parser.add_argument("--config", help="Path to configuration JSON file (defaults are used when omitted)")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode regardless of config setting")

    prefs = _preference_parent()
    generation = _generation_parent()
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("get-language", parents=[prefs], help="Show the metadata language")
    p.add_argument("--language", help="Explicit language, wins over stored values")
    p = sub.add_parser("set-language", parents=[prefs], help="Store the metadata language")
    p.add_argument("language", nargs="?", help="Language; the system locale language when omitted")

    p = sub.add_parser("get-faces-path", parents=[prefs], help="Show the known faces directory")
    p.add_argument("--path", help="Explicit directory, wins over stored values")
    p = sub.add_parser("set-faces-path", parents=[prefs], help="Store the known faces directory")
    p.add_argument("path", nargs="?", help="Directory; <Pictures>/Faces when omitted")

    p = sub.add_parser("get-image-dirs", parents=[prefs], help="Show the image directories")
    p.add_argument("--dirs", nargs="+", help="Explicit directories, win over stored values")
    p = sub.add_parser("set-image-dirs", parents=[prefs], help="Replace the image directories")
    p.add_argument("dirs", nargs="*", help="Directories")
    p = sub.add_parser("add-image-dirs", parents=[prefs], help="Add to the image directories")
    p.add_argument("dirs", nargs="+", help="Directories")

    p = sub.add_parser("get-index-path", parents=[prefs], help="Show the image index database path")
    p.add_argument("--path", help="Explicit path, wins over stored values")
    p = sub.add_parser("set-index-path", parents=[prefs], help="Store the image index database path")
    p.add_argument("path", nargs="?", help="Database file path")

    p = sub.add_parser("list-preferences", help="Show all stored preferences")
    p.add_argument("--preferences-db", help="Preferences database to use instead of the default")
    p = sub.add_parser("remove-preference", help="Delete a stored preference and its session value")
    p.add_argument("name", help="Preference name, for example AIMetaLanguage")
    p.add_argument("--preferences-db", help="Preferences database to use instead of the default")

    p = sub.add_parser("find-images", parents=[prefs], help="Find images by keywords and people")
    p.add_argument("--keywords", nargs="+", help="Keyword wildcard patterns")
    p.add_argument("--people", nargs="+", help="People wildcard patterns")
    p.add_argument("--dirs", nargs="+", help="Directories to scan instead of the configured ones")
    p.add_argument("--no-recurse", action="store_true", help="Do not descend into sub-directories")
    p.add_argument("--pass-thru", action="store_true", help="Print the matches as JSON instead of a gallery")
    p.add_argument("--title", help="Gallery title")
    p.add_argument("--use-index", action="store_true", help="Search the image index instead of scanning")

    p = sub.add_parser("rebuild-index", parents=[prefs], help="Rebuild the image index from the sidecars")
    p.add_argument("--dirs", nargs="+", help="Directories to index instead of the configured ones")
    p.add_argument("--no-recurse", action="store_true", help="Do not descend into sub-directories")
    p.add_argument("--index-path", help="Index database to use instead of the configured one")

    p = sub.add_parser("update-metadata", parents=[prefs], help="Describe images with the model")
    p.add_argument("--dirs", nargs="+", help="Directories to process instead of the configured ones")
    p.add_argument("--language", help="Metadata language")
    p.add_argument("--no-recurse", action="store_true", help="Do not descend into sub-directories")
    p.add_argument("--overwrite", action="store_true", help="Replace existing descriptions")

    p = sub.add_parser("transform", parents=[generation], help="Transform text with free-form instructions")
    p.add_argument("text", help="Text to transform")
    p.add_argument("--instructions", required=True, help="Instructions for the model")
    p = sub.add_parser("spellcheck", parents=[generation], help="Correct spelling and grammar")
    p.add_argument("text", help="Text to check")
    p = sub.add_parser("translate", parents=[generation], help="Translate text")
    p.add_argument("text", help="Text to translate")
    p.add_argument("--language", help="Target language; the metadata language when omitted")
    p = sub.add_parser("evaluate-bool", parents=[generation], help="Ask whether a statement is true")
    p.add_argument("statement", help="Statement to evaluate")
    p = sub.add_parser("evaluate-list", parents=[generation], help="Ask for a list of strings")
    p.add_argument("text", help="Question or text")

    p = sub.add_parser("lmstudio", help="LM Studio helpers")
    p.add_argument("action", choices=["paths", "status", "start", "models", "loaded", "load", "add-mcp"])
    p.add_argument("--model", help="Model to load")
    p.add_argument("--gpu", type=float, default=-1, help="GPU offload ratio, 0 for CPU only")
    p.add_argument("--ttl", type=int, default=-1, help="Idle seconds before unloading")
    p.add_argument("--context-length", type=int, help="Context window size")
    p.add_argument("--port", type=int, default=lmstudio.DEFAULT_SERVER_PORT, help="API server port for start")
    p.add_argument("--timeout", type=int, default=30, help="Seconds to wait for LM Studio to start")
    p.add_argument("--name", default=lmstudio.DEFAULT_MCP_SERVER_NAME, help="MCP server name")
    p.add_argument("--url", default=lmstudio.DEFAULT_MCP_URL, help="MCP server URL")

    sub.add_parser("cpu-cores", help="Show the logical core estimate")
    p = sub.add_parser("has-gpu", help="Check for a GPU with enough memory")
    p.add_argument("--min-memory", type=int, default=system_info.REQUIRED_GPU_MEMORY_MB,
                   help="Required GPU memory in MiB")
    p = sub.add_parser("similarity", help="Cosine similarity of two vectors")
    p.add_argument("vector1", help="Comma separated numbers")
    p.add_argument("vector2", help="Comma separated numbers")
    p = sub.add_parser("validate-image", help="Check that a file is a supported image")
    p.add_argument("path", help="Image path")

    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def process_arguments(args: argparse.Namespace, config: AppConfig) -> AppConfig:
    """
    Process command-line arguments and override config values.

    Args:
        args: Parsed arguments
        config: Loaded configuration

    Returns:
        Updated configuration
    """
    if args.debug:
        config.debug_mode = True
        config.log_level = "DEBUG"
    if getattr(args, "preferences_db", None):
        config.preferences_db_path = args.preferences_db
    if getattr(args, "overwrite", False):
        config.overwrite_descriptions = True
    if getattr(args, "pass_thru", False):
        config.open_browser = False
    return config


def _mode(args: argparse.Namespace) -> SessionMode:
    return SessionMode.from_flags(
        session_only=getattr(args, "session_only", False),
        skip_session=getattr(args, "skip_session", False),
        clear_session=getattr(args, "clear_session", False)
    )


def _generation_settings(args: argparse.Namespace) -> Dict[str, Any]:
    settings = {}
    if args.model:
        settings["model"] = args.model
    if args.temperature is not None:
        settings["temperature"] = args.temperature
    if args.max_tokens is not None:
        settings["max_tokens"] = args.max_tokens
    if args.gpu is not None:
        settings["gpu"] = args.gpu
    return settings


def _parse_vector(text: str) -> List[float]:
    try:
        return [float(part) for part in text.split(",") if part.strip()]
    except ValueError as e:
        raise ValueError(f"Invalid vector '{text}': {str(e)}")


def _print(value: Any) -> None:
    if isinstance(value, (list, dict, bool)) or value is None:
        print(json.dumps(value, indent=2, ensure_ascii=False))
    else:
        print(value)


def _run_preference_command(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    mode = _mode(args)
    db = args.preferences_db
    command = args.command

    if command == "get-language":
        return image_preferences.get_ai_meta_language(resolver, args.language, mode, db)
    if command == "set-language":
        image_preferences.set_ai_meta_language(resolver, args.language, mode, db)
    elif command == "get-faces-path":
        return image_preferences.get_ai_known_faces_rootpath(resolver, args.path, mode, db)
    elif command == "set-faces-path":
        image_preferences.set_ai_known_faces_rootpath(resolver, args.path, mode, db)
    elif command == "get-image-dirs":
        return image_preferences.get_image_directories(resolver, args.dirs, mode, db)
    elif command == "set-image-dirs":
        image_preferences.set_image_directories(resolver, args.dirs, mode, db)
    elif command == "add-image-dirs":
        return image_preferences.add_image_directories(resolver, args.dirs, mode, db)
    elif command == "get-index-path":
        return image_preferences.get_image_index_path(resolver, args.path, mode, db)
    elif command == "set-index-path":
        image_preferences.set_image_index_path(resolver, args.path, mode, db)
    return None


def _run_store_command(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    store = resolver.store(args.preferences_db)
    if args.command == "list-preferences":
        return store.all()

    resolver.session.clear(args.name)
    removed = store.remove(args.name)
    if not removed:
        logger.warning(f"Preference {args.name} was not stored")
    return removed


def _run_find_images(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    mode = _mode(args)
    if args.use_index:
        index = open_image_index(resolver, mode=mode, preferences_db_path=args.preferences_db)
        if index.needs_rebuild:
            directories = image_preferences.get_image_directories(
                resolver, args.dirs, mode, args.preferences_db
            )
            index.rebuild(directories, recurse=not args.no_recurse, extensions=resolver.config.image_extensions)
        records = index.search(args.keywords, args.people)
        if args.pass_thru:
            return [record.to_dict() for record in records]
        from .gallery import show_gallery
        return show_gallery(records, title=args.title or "Indexed images",
                            open_browser=resolver.config.open_browser)

    result = find_images(
        resolver,
        keywords=args.keywords,
        people=args.people,
        image_directories=args.dirs,
        recurse=not args.no_recurse,
        pass_thru=args.pass_thru,
        title=args.title,
        mode=mode,
        preferences_db_path=args.preferences_db
    )
    if args.pass_thru:
        return [record.to_dict() for record in result]
    return result


def _run_rebuild_index(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    mode = _mode(args)
    index = open_image_index(resolver, args.index_path, mode, args.preferences_db)
    directories = image_preferences.get_image_directories(resolver, args.dirs, mode, args.preferences_db)
    count = index.rebuild(directories, recurse=not args.no_recurse, extensions=resolver.config.image_extensions)
    return f"Indexed {count} images into {index.active_path}"


def _run_update_metadata(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    updater = MetadataUpdater(resolver.config, resolver)
    return updater.run(
        image_directories=args.dirs,
        recurse=not args.no_recurse,
        language=args.language,
        mode=_mode(args),
        preferences_db_path=args.preferences_db
    )


def _run_text_command(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    provider = AiProvider.get_provider(resolver.config)
    settings = _generation_settings(args)
    extra = args.extra_instructions

    if args.command == "transform":
        instructions = args.instructions
        if extra:
            instructions = f"{instructions}\n\n{extra}"
        return invoke_llm_text_transformation(provider, args.text, instructions, **settings)
    if args.command == "spellcheck":
        return invoke_spell_check(provider, args.text, extra, **settings)
    if args.command == "translate":
        return get_text_translation(provider, args.text, args.language, extra, resolver, **settings)
    if args.command == "evaluate-bool":
        return invoke_llm_boolean_evaluation(provider, args.statement, extra, **settings)
    return invoke_llm_string_list_evaluation(provider, args.text, extra, **settings)


def _run_lmstudio(args: argparse.Namespace, resolver: PreferenceResolver) -> Any:
    action = args.action
    if action == "paths":
        return lmstudio.get_lmstudio_paths()
    if action == "status":
        return {"installed": lmstudio.is_lmstudio_installed(), "running": lmstudio.is_lmstudio_running()}
    if action == "start":
        started = lmstudio.start_lmstudio(port=args.port, timeout=args.timeout)
        return "Started LM Studio" if started else "LM Studio is already running"
    if action == "models":
        return lmstudio.get_lmstudio_model_list()
    if action == "loaded":
        return lmstudio.get_lmstudio_loaded_model_list()
    if action == "load":
        model = args.model or resolver.config.llm.model
        if not model:
            raise ValueError("--model is required when no model is configured")
        lmstudio.load_model(model, gpu=args.gpu, ttl=args.ttl, context_length=args.context_length)
        return f"Loaded {model}"
    return lmstudio.add_mcp_server_to_lmstudio(args.name, args.url)


_COMMANDS: Dict[str, Callable[[argparse.Namespace, PreferenceResolver], Any]] = {
    "get-language": _run_preference_command,
    "set-language": _run_preference_command,
    "get-faces-path": _run_preference_command,
    "set-faces-path": _run_preference_command,
    "get-image-dirs": _run_preference_command,
    "set-image-dirs": _run_preference_command,
    "add-image-dirs": _run_preference_command,
    "get-index-path": _run_preference_command,
    "set-index-path": _run_preference_command,
    "list-preferences": _run_store_command,
    "remove-preference": _run_store_command,
    "find-images": _run_find_images,
    "rebuild-index": _run_rebuild_index,
    "update-metadata": _run_update_metadata,
    "transform": _run_text_command,
    "spellcheck": _run_text_command,
    "translate": _run_text_command,
    "evaluate-bool": _run_text_command,
    "evaluate-list": _run_text_command,
    "lmstudio": _run_lmstudio,
    "cpu-cores": lambda args, resolver: system_info.get_number_of_cpu_cores(),
    "has-gpu": lambda args, resolver: system_info.has_capable_gpu(args.min_memory),
    "similarity": lambda args, resolver: get_vector_similarity(
        _parse_vector(args.vector1), _parse_vector(args.vector2)
    ),
    "validate-image": lambda args, resolver: validate_image_file(args.path),
}


def run_cli(argv: Optional[List[str]] = None) -> int:
    """
    Run the command-line interface.

    Args:
        argv: Arguments without the program name; ``sys.argv[1:]`` when omitted

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = parse_arguments(argv)
    config = None

    try:
        config = load_config(args.config) if args.config else AppConfig()
        config = process_arguments(args, config)
        setup_logging(config, log_prefix="lmstudio_ai")

        logger.debug(f"Python version: {sys.version}")
        logger.debug(f"Running command: {args.command}")

        resolver = PreferenceResolver(config=config)
        result = _COMMANDS[args.command](args, resolver)
        if result is not None:
            _print(result)
        return 0

    except Exception as e:
        logger.error(f"Command '{args.command}' failed: {str(e)}")
        if config is not None and config.debug_mode:
            import traceback
            logger.error(f"Traceback: {traceback.format_exc()}")
        return 1
