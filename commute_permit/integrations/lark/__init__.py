"""Lark (Feishu) Open API integration."""

from .client import LarkAPIError, LarkClient

__all__ = ["LarkAPIError", "LarkClient"]
