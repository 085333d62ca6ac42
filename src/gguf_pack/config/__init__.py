"""Configuration system for gguf-pack.

Two kinds of configuration exist: the tool configuration (logging, output
handling) and the manifest describing what to pack.

Configuration Sources (Priority Order):
1. Environment Variables (highest) - GGUF_PACK_* prefixed variables
2. User Config - ~/.config/gguf-pack/config.toml (global)
3. Defaults (lowest) - Built-in defaults

Example Usage:
    from gguf_pack.config import load_config, load_manifest

    config = load_config()
    print(config.output.atomic_write)  # True

    manifest = load_manifest("manifest.toml")

Environment Variables:
    - GGUF_PACK_LOGGING_LEVEL=DEBUG
    - GGUF_PACK_OUTPUT_SHOW_PROGRESS=true
"""

from .loader import ConfigLoader, get_default_config, load_config
from .manifest import load_manifest, parse_manifest
from .schema import LoggingConfig, LogLevel, OutputConfig, PackConfig

__all__ = [
    # Main config class
    "PackConfig",
    # Section configs
    "LoggingConfig",
    "OutputConfig",
    # Enums
    "LogLevel",
    # Loader
    "ConfigLoader",
    "load_config",
    "get_default_config",
    # Manifest
    "load_manifest",
    "parse_manifest",
]
