from typing import Any, Dict


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay ``override`` onto ``base`` in place and return ``base``.

    Nested mappings are merged key by key; any other value in ``override``
    (lists included) replaces the one in ``base``.
    """
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            base[key] = deep_merge(current, value)
        else:
            base[key] = value
    return base
