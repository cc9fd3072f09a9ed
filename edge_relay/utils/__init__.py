from .exception_logging import format_exception_message, log_relay_failure
from .traced_requests import traced_relay

__all__ = ["format_exception_message", "log_relay_failure", "traced_relay"]
