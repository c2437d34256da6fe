"""
Blueprint helpers shared by the route modules
"""

from typing import Optional

from flask import current_app

from ..config import model_mappings

EXTENSION_KEY = "qwen_api"


def get_state():
    return current_app.extensions[EXTENSION_KEY]["state"]


def get_orchestrator():
    return current_app.extensions[EXTENSION_KEY]["orchestrator"]


def map_model(model: Optional[str]) -> Optional[str]:
    """Apply the configured model name mappings"""
    if not model:
        return None
    mapped = model_mappings.translate(model)
    if mapped != model:
        print(f'[Chat] Model "{model}" replaced with "{mapped}"')
    return mapped
