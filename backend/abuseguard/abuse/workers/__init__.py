"""Abuse worker exports."""

from .expiry_reactor import ExpiryReactor
from .expiry_relay import ExpiryRelay

__all__ = [
	"ExpiryReactor",
	"ExpiryRelay",
]
