"""Preset files and loaders.

Presets are JSON files shipped with the package describing ready-made
category setups. They are only read when seeding an empty database.
"""

from .defaults import load_preset, get_category_preset, get_preset_value

__all__ = ['load_preset', 'get_category_preset', 'get_preset_value']
