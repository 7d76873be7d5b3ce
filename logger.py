"""
Logging configuration for the cluster benchmark.
"""

import logging
import sys
from pathlib import Path

LOGGER_NAME = "kv_bench"


class BenchmarkLogger:
    """Centralized logging configuration for the benchmark."""

    def __init__(self, log_level: str = "INFO", log_file: str = None):
        self.log_level = getattr(logging, log_level.upper())
        self.log_file = log_file
        self.logger = None
        self._setup_logging()

    def _setup_logging(self):
        """Setup logging configuration with both console and file handlers."""
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(self.log_level)

        # Clear any existing handlers
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        file_handler = None
        if self.log_file:
            log_path = Path(self.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(self.log_file)
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        self.logger.propagate = False

        # redis-py reports cluster topology changes and pub/sub issues on these
        redis_loggers = [
            "redis",
            "redis.cluster",
            "push_response",
        ]
        for logger_name in redis_loggers:
            redis_logger = logging.getLogger(logger_name)
            # Library chatter only surfaces when debugging
            redis_logger.setLevel(logging.DEBUG if self.log_level <= logging.DEBUG else logging.WARNING)
            redis_logger.handlers.clear()
            redis_logger.addHandler(console_handler)
            if file_handler:
                redis_logger.addHandler(file_handler)
            redis_logger.propagate = False

    def get_logger(self) -> logging.Logger:
        """Get the configured logger instance."""
        return self.logger

    def log_error_with_traceback(self, message: str, exception: Exception = None):
        """Log error with full traceback."""
        if exception:
            self.logger.error(f"{message}: {str(exception)}", exc_info=exception)
        else:
            self.logger.error(message, exc_info=True)

    def log_connection_event(self, event_type: str, details: dict):
        """Log connection-related events."""
        message = f"Connection {event_type}: {details}"
        if event_type in ["FAILED", "LOST", "ERROR"]:
            self.logger.error(message)
        else:
            self.logger.info(message)


# Global logger instance
_logger_instance = None


def get_logger() -> logging.Logger:
    """Get the global logger instance."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = BenchmarkLogger()
    return _logger_instance.get_logger()


def setup_logging(log_level: str = "INFO", log_file: str = None) -> BenchmarkLogger:
    """Setup global logging configuration."""
    global _logger_instance
    _logger_instance = BenchmarkLogger(log_level, log_file)
    return _logger_instance


def log_connection_event(event_type: str, details: dict):
    """Convenience function to log connection events on the global logger."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = BenchmarkLogger()
    _logger_instance.log_connection_event(event_type, details)


def log_error_with_traceback(message: str, exception: Exception = None):
    """Convenience function to log errors with traceback."""
    global _logger_instance
    if _logger_instance:
        _logger_instance.log_error_with_traceback(message, exception)
    else:
        logging.error(
            f"{message}: {str(exception) if exception else ''}", exc_info=exception or True
        )
