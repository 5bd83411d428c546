"""
Configuration

Environment-driven constants plus the JSON provider/model configuration
(``configs/generator.json``). Environment variables are loaded from a
``.env`` file when present.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API keys / upstream endpoints
# ---------------------------------------------------------------------------

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY")

GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")
GITHUB_TIMEOUT = float(os.environ.get("GITHUB_TIMEOUT", "30"))

CONFIG_DIR = os.environ.get("REPOWIKI_CONFIG_DIR", None)

# ---------------------------------------------------------------------------
# Pipeline tuning
# ---------------------------------------------------------------------------

WIKI_CACHE_TTL = int(os.environ.get("WIKI_CACHE_TTL", "3600"))
WIKI_CACHE_MAX_SIZE = int(os.environ.get("WIKI_CACHE_MAX_SIZE", "50"))

MAX_TREE_FILES = int(os.environ.get("MAX_TREE_FILES", "10000"))
MAX_FEATURES = int(os.environ.get("MAX_FEATURES", "15"))
FEATURE_MAX_FILES = int(os.environ.get("FEATURE_MAX_FILES", "10"))
FEATURE_MAX_LINES = int(os.environ.get("FEATURE_MAX_LINES", "150"))
CONFIG_MAX_LINES = int(os.environ.get("CONFIG_MAX_LINES", "120"))
PREFETCH_CONCURRENCY = int(os.environ.get("PREFETCH_CONCURRENCY", "10"))
FEATURE_BATCH_SIZE = int(os.environ.get("FEATURE_BATCH_SIZE", "3"))
ARCHITECTURE_MAX_TREE_PATHS = int(os.environ.get("ARCHITECTURE_MAX_TREE_PATHS", "3000"))
DEEP_DIVE_MAX_TREE_PATHS = int(os.environ.get("DEEP_DIVE_MAX_TREE_PATHS", "500"))

SSE_KEEPALIVE_SECONDS = float(os.environ.get("SSE_KEEPALIVE_SECONDS", "15"))


@dataclass(frozen=True)
class PipelineSettings:
    """Product-tuning limits for one generation run."""

    max_tree_files: int = MAX_TREE_FILES
    max_features: int = MAX_FEATURES
    feature_max_files: int = FEATURE_MAX_FILES
    feature_max_lines: int = FEATURE_MAX_LINES
    config_max_lines: int = CONFIG_MAX_LINES
    prefetch_concurrency: int = PREFETCH_CONCURRENCY
    feature_batch_size: int = FEATURE_BATCH_SIZE
    architecture_max_tree_paths: int = ARCHITECTURE_MAX_TREE_PATHS
    deep_dive_max_tree_paths: int = DEEP_DIVE_MAX_TREE_PATHS
    architecture_max_tokens: int = 4096
    deep_dive_max_tokens: int = 16384


# ---------------------------------------------------------------------------
# JSON config loading
# ---------------------------------------------------------------------------

_ENV_PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")


def replace_env_placeholders(config: Any) -> Any:
    """Recursively replace ``${ENV_VAR}`` placeholders in string values."""

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = os.environ.get(name)
        if value is None:
            logger.warning("Environment variable placeholder '${%s}' was not found", name)
            return match.group(0)
        return value

    if isinstance(config, dict):
        return {k: replace_env_placeholders(v) for k, v in config.items()}
    if isinstance(config, list):
        return [replace_env_placeholders(item) for item in config]
    if isinstance(config, str):
        return _ENV_PLACEHOLDER.sub(_replace, config)
    return config


def load_json_config(filename: str) -> Dict[str, Any]:
    """Load a JSON config file from CONFIG_DIR or the bundled configs directory."""
    if CONFIG_DIR:
        config_path = Path(CONFIG_DIR) / filename
    else:
        config_path = Path(__file__).parent / "configs" / filename

    logger.info("Loading configuration from %s", config_path)

    if not config_path.exists():
        logger.warning("Configuration file %s does not exist", config_path)
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Error loading configuration file %s: %s", filename, e)
        return {}
    return replace_env_placeholders(config)


def load_generator_config() -> Dict[str, Any]:
    """Load generator.json and apply LLM_PROVIDER / LLM_MODEL overrides."""
    generator_config = load_json_config("generator.json")

    provider_override = os.environ.get("LLM_PROVIDER")
    if provider_override:
        generator_config["default_provider"] = provider_override

    model_override = os.environ.get("LLM_MODEL")
    if model_override:
        provider = generator_config.get("default_provider", "openai")
        generator_config.setdefault("providers", {}).setdefault(provider, {})[
            "default_model"
        ] = model_override

    return generator_config


configs: Dict[str, Any] = load_generator_config()


def get_model_config(provider: str = "openai", model: Optional[str] = None) -> Dict[str, Any]:
    """Return ``{"model_kwargs": {...}}`` for the given provider and model.

    Raises:
        ValueError: if the provider is not configured.
    """
    providers = configs.get("providers", {})
    provider_config = providers.get(provider)
    if provider_config is None:
        raise ValueError(f"Configuration for provider '{provider}' not found")

    if not model:
        model = provider_config.get("default_model")
    model_params = dict(provider_config.get("models", {}).get(model, {}))
    model_kwargs = {"model": model, **model_params}
    return {"model_kwargs": model_kwargs}
