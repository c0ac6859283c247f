"""
Engine settings with YAML overrides.
"""
import copy
import logging
import os

import yaml

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))


def get_default_settings():
    """Return default engine settings."""
    return {
        'pool_size': 4,
        'advance_per_pool': 2,
        'final_round_max_players': 4,
        'min_kob_pool_size': 4,
        'max_kob_pool_size': 8,
        'transaction_retries': 5,
        'lock_timeout': 10,
        'match_rules': {
            'first_to': 21,
            'win_by': 2,
            'cap': 30,
            'num_sets': 1,
        },
        'kob_match_rules': {
            'first_to': 21,
            'win_by': 2,
            'cap': 25,
            'num_sets': 1,
        },
        'playoff_rules': {},
    }


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(path=None):
    """Load settings from a YAML file, merging with defaults."""
    defaults = get_default_settings()
    if path is None:
        path = os.path.join(DATA_DIR, 'settings.yaml')
    if not os.path.exists(path):
        return defaults
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if not data:
        return defaults
    if not isinstance(data, dict):
        logger.warning(f'Ignoring {path}: expected a mapping, got {type(data).__name__}')
        return defaults
    return _merge(defaults, data)


def save_settings(settings, path):
    """Save settings to a YAML file."""
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)
