"""Bearer header handling for inbound requests."""

from .dependencies import bearer_token, parse_bearer_token

__all__ = ["bearer_token", "parse_bearer_token"]
