from .retry import TRANSIENT_ERRORS, RetryConfig, RetryExecutor

__all__ = ["TRANSIENT_ERRORS", "RetryConfig", "RetryExecutor"]
