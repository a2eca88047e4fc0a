"""Loader for packaged category presets."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List

# Preset directory
PRESET_DIR = Path(__file__).parent


def load_preset(preset_name: str) -> Dict[str, Any]:
    """Load a preset file by name.

    Args:
        preset_name: Name of the preset file (without .json extension)

    Returns:
        Dictionary containing the preset. Percentages are parsed as Decimal.

    Raises:
        FileNotFoundError: If the preset file doesn't exist
        json.JSONDecodeError: If the preset file is invalid JSON

    Example:
        >>> preset = load_preset('categories')
        >>> preset['terminal']
        'Savings'
    """
    preset_path = PRESET_DIR / f"{preset_name}.json"

    if not preset_path.exists():
        raise FileNotFoundError(f"Preset file not found: {preset_path}")

    with open(preset_path, 'r', encoding='utf-8') as f:
        return json.load(f, parse_float=Decimal)


def get_category_preset(preset_name: str = 'categories') -> List[Dict[str, Any]]:
    """Category rows of a preset, terminal category first.

    Each row has ``name``, ``limit_percentage`` (Decimal) and ``overflow_to``
    (a category name or None). Rows are ordered so that every overflow target
    appears before the categories pointing at it.
    """
    rows = load_preset(preset_name)['categories']
    parsed = [
        {
            'name': row['name'],
            'limit_percentage': Decimal(str(row['limit_percentage'])),
            'overflow_to': row.get('overflow_to'),
        }
        for row in rows
    ]
    ordered: List[Dict[str, Any]] = []
    placed = set()
    remaining = list(parsed)
    while remaining:
        ready = [r for r in remaining if r['overflow_to'] is None or r['overflow_to'] in placed]
        if not ready:
            names = ', '.join(r['name'] for r in remaining)
            raise ValueError(f"Preset '{preset_name}' has unresolved overflow targets: {names}")
        for row in ready:
            ordered.append(row)
            placed.add(row['name'])
            remaining.remove(row)
    return ordered


def get_preset_value(preset_name: str, *keys: str, default: Any = None) -> Any:
    """Look up a top-level or nested field of a preset.

    ``init_db`` uses it to read the declared ``terminal`` name and check it
    against the seeded rows. Missing presets and missing keys give
    ``default``.

    Example:
        >>> get_preset_value('categories', 'terminal')
        'Savings'
    """
    try:
        value = load_preset(preset_name)
    except FileNotFoundError:
        return default
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            return default
        value = value[key]
    return value
