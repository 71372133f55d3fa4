"""
Configuration management for tagtree workspaces.

The configuration is stored as a TOML file in the store directory.
It specifies which providers to use and their parameters.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w


CONFIG_FILENAME = "tagtree.toml"
CONFIG_VERSION = 1

DEFAULT_STORAGE_FILE = "workspace.db"
DEFAULT_SAVE_DELAY = 0.5


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkspaceConfig:
    """Complete workspace configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Provider configurations
    analyzer: ProviderConfig = field(default_factory=lambda: ProviderConfig("passthrough"))
    comparator: ProviderConfig = field(default_factory=lambda: ProviderConfig("never"))

    # Persistence
    save_delay: float = DEFAULT_SAVE_DELAY
    storage_file: str = DEFAULT_STORAGE_FILE

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def storage_path(self) -> Path:
        return self.path / self.storage_file

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_store_path() -> Path:
    """Workspace directory: TAGTREE_STORE_PATH, else ~/.tagtree."""
    env = os.environ.get("TAGTREE_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".tagtree"


def detect_default_providers() -> dict[str, ProviderConfig]:
    """
    Detect the best default providers for the current environment.

    Priority:
    1. Gemini (GEMINI_API_KEY, GOOGLE_API_KEY or GOOGLE_CLOUD_PROJECT)
    2. Anthropic (ANTHROPIC_API_KEY)
    3. OpenAI (TAGTREE_OPENAI_API_KEY or OPENAI_API_KEY)
    4. Fallback: offline passthrough analyzer, comparator that never matches

    Returns provider configs for: analyzer, comparator
    """
    has_gemini_key = bool(
        os.environ.get("GEMINI_API_KEY") or
        os.environ.get("GOOGLE_API_KEY") or
        os.environ.get("GOOGLE_CLOUD_PROJECT")
    )
    has_anthropic_key = bool(os.environ.get("ANTHROPIC_API_KEY"))
    has_openai_key = bool(
        os.environ.get("TAGTREE_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )

    if has_gemini_key:
        name = "gemini"
    elif has_anthropic_key:
        name = "anthropic"
    elif has_openai_key:
        name = "openai"
    else:
        return {
            "analyzer": ProviderConfig("passthrough"),
            "comparator": ProviderConfig("never"),
        }
    return {
        "analyzer": ProviderConfig(name),
        "comparator": ProviderConfig(name),
    }


def create_default_config(store_path: Path) -> WorkspaceConfig:
    """Create a new config with auto-detected defaults."""
    providers = detect_default_providers()

    return WorkspaceConfig(
        path=store_path,
        analyzer=providers["analyzer"],
        comparator=providers["comparator"],
    )


def load_config(store_path: Path) -> WorkspaceConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("workspace", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    # Parse provider configs
    def parse_provider(section: dict) -> ProviderConfig:
        return ProviderConfig(
            name=section.get("name", ""),
            params={k: v for k, v in section.items() if k != "name"},
        )

    persistence = data.get("persistence", {})
    save_delay = persistence.get("save_delay", DEFAULT_SAVE_DELAY)
    if not isinstance(save_delay, (int, float)) or save_delay < 0:
        raise ValueError(f"persistence.save_delay must be a non-negative number: {save_delay!r}")

    return WorkspaceConfig(
        path=store_path,
        version=version,
        created=data.get("workspace", {}).get("created", ""),
        analyzer=parse_provider(data.get("analyzer", {"name": "passthrough"})),
        comparator=parse_provider(data.get("comparator", {"name": "never"})),
        save_delay=float(save_delay),
        storage_file=persistence.get("storage_file", DEFAULT_STORAGE_FILE),
    )


def save_config(config: WorkspaceConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    # Ensure directory exists
    config.path.mkdir(parents=True, exist_ok=True)

    # Build TOML structure
    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {"name": p.name}
        d.update(p.params)
        return d

    data = {
        "workspace": {
            "version": config.version,
            "created": config.created,
        },
        "analyzer": provider_to_dict(config.analyzer),
        "comparator": provider_to_dict(config.comparator),
        "persistence": {
            "save_delay": config.save_delay,
            "storage_file": config.storage_file,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> WorkspaceConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
