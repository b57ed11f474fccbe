"""Utility helpers."""

from .masking import describe_endpoint, mask_connection_options, mask_password

__all__ = ["describe_endpoint", "mask_connection_options", "mask_password"]
