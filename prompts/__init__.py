"""
Prompt templates for AI Portfolio.
Each request to the LLM is a plain-text template with {placeholders};
the expected JSON schema is filled in at render time.
"""

import os
from typing import Dict

PROMPT_DIR = os.path.dirname(os.path.abspath(__file__))

_prompt_cache: Dict[str, str] = {}


def load_prompt(filename: str) -> str:
    """
    Read a template from this package, caching it for the process lifetime.

    Raises:
        FileNotFoundError: If no such template ships with the package
    """
    if filename not in _prompt_cache:
        filepath = os.path.join(PROMPT_DIR, filename)
        if not os.path.isfile(filepath):
            raise FileNotFoundError(f"Prompt file not found: {filepath}")
        with open(filepath, 'r', encoding='utf-8') as f:
            _prompt_cache[filename] = f.read()
    return _prompt_cache[filename]


def render_prompt(filename: str, **values) -> str:
    """
    Fill a template's placeholders.

    Raises:
        KeyError: If the template needs a value that was not given
    """
    try:
        return load_prompt(filename).format(**values)
    except KeyError as e:
        raise KeyError(f"Prompt {filename} is missing value for {e}") from e


def clear_prompt_cache():
    """Forget loaded templates so edited files are picked up."""
    _prompt_cache.clear()
