"""
Custom exception classes for the buy feed.

Provides typed exceptions so each failure class can be handled at the
boundary of the operation that raised it.
"""

class FeedException(Exception):
    """Base exception for all feed-related errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationException(FeedException):
    """Raised when configuration is missing or invalid."""
    pass


class NetworkException(FeedException):
    """Raised when an upstream HTTP call fails."""
    pass


class RpcResponseError(NetworkException):
    """Raised when a JSON-RPC response carries an error field."""
    pass


class ClassificationException(FeedException):
    """Raised when a transaction cannot be parsed for classification."""
    pass
