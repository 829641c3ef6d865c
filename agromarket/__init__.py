"""
Agromarket - classifieds marketplace backend.
"""
from .config import Config
from .main import create_app

__version__ = "1.0.0"

__all__ = [
    "Config",
    "create_app",
]
