# src/llmgate/extensions/config.py
"""
Per-request extension configuration.

Callers may tune or disable extensions for a single request through the
reserved request metadata key ``extension_config``::

    {
        "extension_config": {
            "caching": {"enabled": False},
            "logging": {"enabled": True, "level": "debug"},
            "metrics": {"interval": 60}
        }
    }

Extensions are enabled unless their entry says ``"enabled": False``. Any
malformed shape (missing metadata, wrong types, no entry) degrades to
"enabled, no per-request config". Extensions flagged ``security_critical``
ignore a disable request.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from ..utils import metadata as md

EXTENSION_CONFIG_KEY = "extension_config"


def get_extension_config(
    metadata: Optional[Mapping[str, Any]], extension_name: str
) -> Tuple[Optional[Dict[str, Any]], bool]:
    """
    Extract the per-request settings of one extension.

    Args:
        metadata: Request metadata, may be None.
        extension_name: Name of the extension.

    Returns:
        ``(config, enabled)``. ``config`` is the extension's entry
        (including any ``enabled`` key) or None when absent or malformed.
        ``enabled`` is False only when the entry holds ``"enabled": False``.
    """
    config = md.get_map(md.get_map(metadata, EXTENSION_CONFIG_KEY), extension_name)
    if config is None:
        return None, True
    return config, md.get_bool(config, "enabled", True)


def is_extension_enabled(metadata: Optional[Mapping[str, Any]], extension_name: str) -> bool:
    """True unless the request metadata disables the extension."""
    _, enabled = get_extension_config(metadata, extension_name)
    return enabled


def set_extension_config(metadata: Dict[str, Any], extension_name: str, **settings: Any) -> Dict[str, Any]:
    """
    Store per-request settings for an extension, creating the reserved key
    as needed. A malformed existing ``extension_config`` value is replaced.
    """
    all_configs = metadata.get(EXTENSION_CONFIG_KEY)
    if not isinstance(all_configs, dict):
        all_configs = {}
        metadata[EXTENSION_CONFIG_KEY] = all_configs
    entry = all_configs.get(extension_name)
    if not isinstance(entry, dict):
        entry = {}
        all_configs[extension_name] = entry
    entry.update(settings)
    return metadata
