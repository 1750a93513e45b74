"""Configuration for kbforge.

Settings come from built-in defaults, an optional YAML file and environment
variables, in that order; CLI flags are applied last by the caller.
"""

import os
import logging
import hashlib
import json
from pathlib import Path
from typing import Dict, Any, Optional, List

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "kbforge.yaml"

DEFAULT_CATEGORIES = [
    "accessibility",
    "architecture",
    "best-practices",
    "css",
    "git",
    "javascript",
    "patterns",
    "performance",
    "pr-learnings",
    "prompts",
    "quick-reference",
    "react",
    "security",
    "templates",
    "testing",
    "tooling",
    "typescript",
]

# Documents directly under the corpus root.
ROOT_CATEGORY = "root"
OTHER_CATEGORY = "other"


class ZoneWeights(BaseModel):
    """Per-zone term frequency multipliers."""
    title: int = Field(default=3, ge=0, description="Weight of a title occurrence")
    heading: int = Field(default=2, ge=0, description="Weight of a heading occurrence")
    body: int = Field(default=1, ge=0, description="Weight of a body occurrence")


class KBConfig(BaseModel):
    """kbforge configuration."""
    root: str = Field(default=".", description="Corpus root directory")
    index_path: str = Field(default="index.json", description="Persisted index file")
    categories: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES),
                                  description="Known top-level category folders")
    entry_points: List[str] = Field(default_factory=lambda: ["README.md"],
                                    description="File names exempt from orphan detection")
    exclude_dirs: List[str] = Field(default_factory=lambda: [".git", "node_modules", ".venv", "__pycache__"],
                                    description="Directory names never walked")
    workers: Optional[int] = Field(default=None, ge=1, description="Worker pool size (default: CPU count)")
    zone_weights: ZoneWeights = Field(default_factory=ZoneWeights)
    default_limit: int = Field(default=20, ge=1, description="Default number of query results")
    title_phrase_multiplier: float = Field(default=3.0, ge=1.0,
                                           description="Score multiplier for an exact query phrase in the title")
    required_sections: Dict[str, List[str]] = Field(default_factory=dict,
                                                    description="Per template kind required heading overrides")

    @field_validator("categories")
    @classmethod
    def _normalize_categories(cls, value: List[str]) -> List[str]:
        return sorted({c.strip().lower() for c in value if c.strip()})

    @field_validator("required_sections")
    @classmethod
    def _check_template_kinds(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        from ..indexer.document import TemplateKind

        known = {k.value for k in TemplateKind if k != TemplateKind.UNKNOWN}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"unknown template kind(s) {unknown}; expected one of {sorted(known)}")
        return value

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    @property
    def resolved_index_path(self) -> Path:
        """Index path; relative paths are taken from the corpus root."""
        path = Path(self.index_path)
        return path if path.is_absolute() else self.root_path / path

    @property
    def max_workers(self) -> int:
        return self.workers or os.cpu_count() or 1

    def fingerprint(self) -> str:
        """Hash of the settings that affect how a single file parses."""
        payload = json.dumps({"categories": self.categories}, sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    @classmethod
    def from_env(cls, base: Optional[Dict[str, Any]] = None) -> 'KBConfig':
        """Create configuration from ``base`` values plus environment overrides."""
        data = dict(base or {})
        if os.getenv('KBFORGE_ROOT'):
            data['root'] = os.environ['KBFORGE_ROOT']
        if os.getenv('KBFORGE_INDEX_PATH'):
            data['index_path'] = os.environ['KBFORGE_INDEX_PATH']
        if os.getenv('KBFORGE_WORKERS'):
            data['workers'] = os.environ['KBFORGE_WORKERS']
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def find_config_file(root: Optional[str] = None) -> Optional[Path]:
    """Locate a config file: $KBFORGE_CONFIG, <root>/kbforge.yaml, ~/.kbforge/kbforge.yaml."""
    possible_paths = [
        os.environ.get('KBFORGE_CONFIG'),
        os.path.join(root or os.getcwd(), CONFIG_FILENAME),
        os.path.join(os.path.expanduser('~'), '.kbforge', CONFIG_FILENAME),
    ]
    for path in possible_paths:
        if path and os.path.exists(path):
            return Path(path)
    return None


def load_config(config_path: Optional[str] = None,
                root: Optional[str] = None,
                overrides: Optional[Dict[str, Any]] = None) -> KBConfig:
    """Load configuration.

    Args:
        config_path: Explicit YAML file; must exist if given
        root: Corpus root, used to look for ``kbforge.yaml``
        overrides: Values that win over file and environment (CLI flags)

    Returns:
        Validated KBConfig

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    data: Dict[str, Any] = {}
    path = Path(config_path) if config_path else find_config_file(root)

    if config_path and not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    if path is not None:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        data = _deep_merge(data, file_config)
        logger.debug(f"Loaded configuration from {path}")

    config = KBConfig.from_env(data)

    overrides = dict(overrides or {})
    if root is not None:
        overrides.setdefault('root', root)
    if overrides:
        values = _deep_merge(config.model_dump(), {k: v for k, v in overrides.items() if v is not None})
        try:
            config = KBConfig(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    return config
