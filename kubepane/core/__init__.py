"""
Core module initialization.
Credential handling, encryption at rest and logging setup.
"""
from .credentials import CredentialSlot, ParsedCredentials, validate_credentials
from .logging import get_logger, setup_logging

__all__ = [
    "CredentialSlot",
    "ParsedCredentials",
    "get_logger",
    "setup_logging",
    "validate_credentials",
]
