"""
Configuration handling for the LM Studio AI helpers.
"""

import json
import os
import re
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any


DEFAULT_LMSTUDIO_URL = "http://localhost:1234/v1/chat/completions"
DEFAULT_OPENAI_URL = "https://api.openai.com/v1/chat/completions"


@dataclass
class LLMConfig:
    """Chat-completion endpoint and generation settings."""
    provider_type: str = "lmstudio"
    api_url: str = DEFAULT_LMSTUDIO_URL
    api_key: str = ""
    model: str = ""
    temperature: float = 0.2
    max_tokens: int = -1
    timeout: int = 120
    # LM Studio offload ratio: -1 lets LM Studio decide, 0 is CPU only, 1 is max
    gpu: float = -1
    ttl: int = -1


@dataclass
class AppConfig:
    """Main application configuration."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    max_retries: int = 3
    log_level: str = "INFO"
    debug_mode: bool = False
    log_file: Optional[str] = None
    preferences_db_path: Optional[str] = None
    db_busy_timeout: int = 5000
    max_backup_probes: int = 10
    image_extensions: List[str] = field(default_factory=lambda: [".jpg", ".jpeg", ".png"])
    open_browser: bool = True
    max_image_resolution: int = 1024
    overwrite_descriptions: bool = False


def _substitute_env_vars(value: Any) -> Any:
    """
    Substitute environment variables in string values.

    Args:
        value: Value to process for environment variables

    Returns:
        Value with environment variables substituted
    """
    if not isinstance(value, str):
        return value

    # ${ENV_VAR} syntax
    pattern = r'\${([^}]+)}'

    def replace_env_var(match):
        env_var = match.group(1)
        env_value = os.environ.get(env_var)
        if env_value is None:
            print(f"Warning: Environment variable {env_var} not found")
            return ""
        return env_value

    return re.sub(pattern, replace_env_var, value)


def _process_config_dict(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process a configuration dictionary to substitute environment variables.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Processed dictionary with environment variables substituted
    """
    result = {}

    for key, value in config_dict.items():
        if isinstance(value, dict):
            result[key] = _process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _process_config_dict(item) if isinstance(item, dict) else _substitute_env_vars(item)
                for item in value
            ]
        else:
            result[key] = _substitute_env_vars(value)

    return result


def load_config(config_path: str) -> AppConfig:
    """
    Load and validate configuration from JSON file.

    The file is flat: provider settings use an ``llm_`` prefix
    (``llm_api_url``, ``llm_model``, ...) next to the application settings.

    Args:
        config_path: Path to the configuration JSON file

    Returns:
        AppConfig object

    Raises:
        ValueError: If the configuration is invalid
        RuntimeError: If the configuration file cannot be loaded
    """
    config_path = os.path.abspath(os.path.expanduser(config_path))

    try:
        with open(config_path, 'r') as cfg:
            config_dict = json.load(cfg)
    except (json.JSONDecodeError, IOError) as e:
        raise RuntimeError(f"Failed to load configuration from {config_path}: {str(e)}")

    config_dict = _process_config_dict(config_dict)

    provider_type = config_dict.pop('provider', 'lmstudio')
    if provider_type == 'lmstudio':
        default_url = DEFAULT_LMSTUDIO_URL
    elif provider_type == 'openai':
        if not config_dict.get('llm_api_key'):
            raise ValueError("Missing API key in configuration for provider 'openai'")
        default_url = DEFAULT_OPENAI_URL
    else:
        raise ValueError(f"Unsupported AI provider: {provider_type}")

    llm_config = LLMConfig(provider_type=provider_type, api_url=default_url)
    for key in list(config_dict.keys()):
        if not key.startswith('llm_'):
            continue
        attr = key[len('llm_'):]
        if not hasattr(llm_config, attr) or attr == 'provider_type':
            raise ValueError(f"Unknown LLM setting in configuration: {key}")
        setattr(llm_config, attr, config_dict.pop(key))

    try:
        return AppConfig(llm=llm_config, **config_dict)
    except TypeError as e:
        raise ValueError(f"Invalid configuration in {config_path}: {str(e)}")


def save_config(config: AppConfig, config_path: str) -> None:
    """
    Save configuration to JSON file.

    Args:
        config: AppConfig object
        config_path: Path to save the configuration

    Raises:
        RuntimeError: If the configuration cannot be saved
    """
    try:
        config_dict = asdict(config)
        llm_config = config_dict.pop('llm', {})
        config_dict['provider'] = llm_config.pop('provider_type', 'lmstudio')
        for key, value in llm_config.items():
            config_dict[f'llm_{key}'] = value

        with open(config_path, 'w') as f:
            json.dump(config_dict, f, indent=2)
    except (IOError, TypeError) as e:
        raise RuntimeError(f"Failed to save configuration: {str(e)}")
