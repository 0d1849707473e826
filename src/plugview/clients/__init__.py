"""
Client modules for external service communication
"""

from .relay import RelayClient, SessionInfo

__all__ = ["RelayClient", "SessionInfo"]
