"""Configuration file support for sourcehunter.

Loads .sourcehunter.yml from the project root (or a given path) and provides
custom sources, sinks, sanitizers, path exclusions, suppression and the
scan limits.

Config format example:

    sources:
      python:
        - "get_untrusted"
      javascript:
        - "getUntrustedData"

    sinks:
      java:
        sql: ["customQuery", "rawExecute"]
        command: ["shellRun"]
      php:
        sql: ["customDbExec"]

    sanitizers:
      java:
        universal: ["MySanitizer.clean"]
        sql: ["MyEscaper.escapeSQL"]
      php: ["customSanitize"]

    exclude_paths:
      - "vendor/"
      - "test/"
      - "**/*_test.go"

    suppression_keyword: "nosec"
    min_confidence: "MEDIUM"
    dedup: false
    max_workers: 4
    file_timeout: 30
    batch_timeout: 600
    max_file_size: 1048576
"""

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .models import SinkKind

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ('.sourcehunter.yml', '.sourcehunter.yaml')

CONFIDENCE_LEVELS = {'HIGH': 80, 'MEDIUM': 50, 'LOW': 0}

DEFAULT_MAX_FILE_SIZE = 1024 * 1024


@dataclass
class ScanConfig:
    """Parsed configuration from .sourcehunter.yml (or defaults)."""
    custom_sources: Dict[str, List[str]] = field(default_factory=dict)
    custom_sinks: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    custom_sanitizers: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    exclude_paths: List[str] = field(default_factory=list)
    suppression_keyword: str = "nosec"
    min_confidence: int = 0
    dedup: bool = False
    max_workers: Optional[int] = None
    file_timeout: Optional[float] = 30.0
    batch_timeout: Optional[float] = 600.0
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    dependency_audit: bool = True
    source_path: Optional[str] = None

    def get_sources(self, language: str) -> List[str]:
        """Get custom sources for a given language."""
        return self.custom_sources.get(language, [])

    def get_sinks(self, language: str, category: str = None) -> List[str]:
        """Get custom sinks for a given language and optional category."""
        lang_sinks = self.custom_sinks.get(language, {})
        if category:
            return lang_sinks.get(category, [])
        result = []
        for sinks in lang_sinks.values():
            result.extend(sinks)
        return result

    def get_sanitizers(self, language: str, category: str = None) -> List[str]:
        """Get custom sanitizers for a given language and optional category.

        ``universal`` sanitizers apply to every category.
        """
        lang_sans = self.custom_sanitizers.get(language, {})
        if category:
            return lang_sans.get(category, []) + lang_sans.get('universal', [])
        result = []
        for sans in lang_sans.values():
            result.extend(sans)
        return result

    def should_exclude(self, file_path: str) -> bool:
        """Check if a file path matches any exclusion pattern."""
        normalized = file_path.replace('\\', '/')
        for pattern in self.exclude_paths:
            if fnmatch.fnmatch(normalized, pattern):
                return True
            # Also check if any path component matches
            if pattern.endswith('/') and pattern.rstrip('/') in normalized.split('/'):
                return True
        return False


def load_config(target_path: str, config_path: str = None) -> ScanConfig:
    """Load sourcehunter configuration.

    Args:
        target_path: The scan target path (used to find .sourcehunter.yml)
        config_path: Explicit config path (overrides auto-discovery)

    Returns:
        The parsed ScanConfig, or defaults when no file is found.

    Raises:
        ConfigError: explicit path missing, unreadable YAML or invalid values.
    """
    if config_path:
        if not os.path.isfile(config_path):
            raise ConfigError(f"Config file not found: {config_path}")
        return _parse_config(config_path)

    # Walk up from target_path to find .sourcehunter.yml
    search_dir = os.path.abspath(target_path)
    if os.path.isfile(search_dir):
        search_dir = os.path.dirname(search_dir)

    while True:
        for name in CONFIG_FILENAMES:
            candidate = os.path.join(search_dir, name)
            if os.path.isfile(candidate):
                return _parse_config(candidate)
        parent = os.path.dirname(search_dir)
        if parent == search_dir:
            break  # Reached filesystem root
        search_dir = parent

    return ScanConfig()


def parse_min_confidence(value: Any) -> int:
    """Accept 0-100 or one of HIGH / MEDIUM / LOW."""
    if isinstance(value, bool):
        raise ConfigError(f"min_confidence must be a number or level, got {value!r}")
    if isinstance(value, (int, float)):
        number = int(value)
    elif isinstance(value, str) and value.strip().upper() in CONFIDENCE_LEVELS:
        return CONFIDENCE_LEVELS[value.strip().upper()]
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise ConfigError(f"min_confidence must be 0-100 or HIGH/MEDIUM/LOW, got {value!r}")
    if not 0 <= number <= 100:
        raise ConfigError(f"min_confidence must be between 0 and 100, got {number}")
    return number


def _positive_number(data: Dict[str, Any], key: str, default, integer: bool = False):
    if key not in data or data[key] is None:
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{key} must be a positive number, got {value!r}")
    return int(value) if integer else float(value)


def _string_list(value: Any, key: str) -> List[str]:
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list")
    return [str(s) for s in value]


def _parse_config(config_path: str) -> ScanConfig:
    """Parse a .sourcehunter.yml file into a ScanConfig."""
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    config = ScanConfig(source_path=config_path)
    sink_kinds = {k.value for k in SinkKind}

    # Parse sources
    sources = data.get('sources') or {}
    if not isinstance(sources, dict):
        raise ConfigError("sources must map languages to lists")
    for lang, items in sources.items():
        config.custom_sources[str(lang)] = _string_list(items, f"sources.{lang}")

    # Parse sinks
    sinks = data.get('sinks') or {}
    if not isinstance(sinks, dict):
        raise ConfigError("sinks must map languages to {kind: [names]}")
    for lang, categories in sinks.items():
        if not isinstance(categories, dict):
            raise ConfigError(f"sinks.{lang} must map sink kinds to lists")
        config.custom_sinks[str(lang)] = {}
        for cat, items in categories.items():
            if cat not in sink_kinds:
                raise ConfigError(f"sinks.{lang}: unknown sink kind {cat!r}")
            config.custom_sinks[str(lang)][cat] = _string_list(items, f"sinks.{lang}.{cat}")

    # Parse sanitizers: a plain list is shorthand for {universal: [...]}
    sanitizers = data.get('sanitizers') or {}
    if not isinstance(sanitizers, dict):
        raise ConfigError("sanitizers must map languages to lists")
    for lang, categories in sanitizers.items():
        if isinstance(categories, list):
            config.custom_sanitizers[str(lang)] = {'universal': _string_list(categories, f"sanitizers.{lang}")}
        elif isinstance(categories, dict):
            unknown = set(map(str, categories)) - sink_kinds - {'universal'}
            if unknown:
                raise ConfigError(f"sanitizers.{lang}: unknown sink kind {sorted(unknown)[0]!r}")
            config.custom_sanitizers[str(lang)] = {
                str(cat): _string_list(items, f"sanitizers.{lang}.{cat}")
                for cat, items in categories.items()
            }
        else:
            raise ConfigError(f"sanitizers.{lang} must be a list or mapping")

    # Parse exclude_paths
    if data.get('exclude_paths') is not None:
        config.exclude_paths = _string_list(data['exclude_paths'], 'exclude_paths')

    # Parse simple settings
    config.suppression_keyword = str(data.get('suppression_keyword', 'nosec'))
    if 'min_confidence' in data:
        config.min_confidence = parse_min_confidence(data['min_confidence'])
    if 'dedup' in data:
        if not isinstance(data['dedup'], bool):
            raise ConfigError("dedup must be true or false")
        config.dedup = data['dedup']
    config.max_workers = _positive_number(data, 'max_workers', None, integer=True)
    config.file_timeout = _positive_number(data, 'file_timeout', config.file_timeout)
    config.batch_timeout = _positive_number(data, 'batch_timeout', config.batch_timeout)
    config.max_file_size = _positive_number(data, 'max_file_size', config.max_file_size, integer=True)

    logger.debug("Loaded config from %s", config_path)
    return config
