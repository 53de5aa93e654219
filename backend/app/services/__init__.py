"""
Services package for clients of the TestDesk API.
"""

from .editor_client import EditorClient

__all__ = [
    "EditorClient",
]
