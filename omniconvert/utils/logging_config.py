"""
Centralized logging configuration for the OmniConvert service.

This module provides:
- One root logger setup shared by the API, orchestrator and encoders
- Environment-based configuration (level, format, optional log file)
- A get_logger() helper that resolves the calling module's name
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Union


# ===== LOGGING CONFIGURATION =====

class LogLevel:
    """Standard log levels with string representations."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @staticmethod
    def from_string(level_str: str) -> int:
        """Convert string log level to integer."""
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'WARN': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
            'FATAL': logging.CRITICAL,
        }
        return level_map.get(level_str.upper(), logging.INFO)


class LogConfig:
    """Logging settings read from the environment."""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    # More verbose, includes line numbers
    DEV_FORMAT = '%(asctime)s [%(levelname)8s] %(name)s:%(lineno)d - %(message)s'

    JSON_FORMAT = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'

    @staticmethod
    def get_log_level() -> int:
        """Get log level from environment or default to INFO."""
        level_str = os.getenv('LOG_LEVEL', os.getenv('LOGLEVEL', 'INFO'))
        return LogLevel.from_string(level_str)

    @staticmethod
    def get_log_format() -> str:
        """Get log format based on LOG_FORMAT (standard, dev or json)."""
        format_type = os.getenv('LOG_FORMAT', 'standard').lower()

        if format_type in ('dev', 'development'):
            return LogConfig.DEV_FORMAT
        elif format_type == 'json':
            return LogConfig.JSON_FORMAT
        return LogConfig.DEFAULT_FORMAT

    @staticmethod
    def should_log_to_file() -> bool:
        return os.getenv('LOG_TO_FILE', 'false').lower() in ('true', '1', 'yes')

    @staticmethod
    def get_log_file_path() -> Optional[Path]:
        log_file = os.getenv('LOG_FILE')
        if log_file:
            return Path(log_file)
        return None


# ===== LOGGER FACTORY =====

class LoggerFactory:
    """Factory for creating pre-configured loggers."""

    _loggers: Dict[str, logging.Logger] = {}
    _configured = False

    @classmethod
    def configure_logging(cls, level: Optional[int] = None,
                          format_str: Optional[str] = None,
                          log_to_file: bool = False,
                          log_file: Optional[Union[str, Path]] = None) -> None:
        """Configure the root logger once for the whole process."""
        if cls._configured:
            return

        log_level = level or LogConfig.get_log_level()
        log_format = format_str or LogConfig.get_log_format()
        should_log_to_file = log_to_file or LogConfig.should_log_to_file()
        log_file_path = Path(log_file) if log_file else LogConfig.get_log_file_path()

        formatter = logging.Formatter(log_format)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Avoid duplicate handlers when uvicorn reloads
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if should_log_to_file and log_file_path:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get or create a logger with the given name."""
        if name not in cls._loggers:
            cls.configure_logging()
            cls._loggers[name] = logging.getLogger(name)
        return cls._loggers[name]

    @classmethod
    def get_module_logger(cls) -> logging.Logger:
        """Get a logger named after the module that called get_logger()."""
        import inspect
        frame = inspect.currentframe()
        try:
            # Two frames up: get_logger() -> caller module
            caller_frame = frame.f_back.f_back
            module_name = caller_frame.f_globals.get('__name__', 'omniconvert')
            return cls.get_logger(module_name)
        finally:
            del frame


# ===== UTILITY FUNCTIONS =====

def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Convenience function to get a logger."""
    if name:
        return LoggerFactory.get_logger(name)
    return LoggerFactory.get_module_logger()


def setup_logging(level: Optional[Union[str, int]] = None,
                  format_type: Optional[str] = None,
                  log_to_file: bool = False,
                  log_file: Optional[Union[str, Path]] = None) -> None:
    """Setup logging with the given configuration."""
    if isinstance(level, str):
        level = LogLevel.from_string(level)

    LoggerFactory.configure_logging(
        level=level,
        format_str=format_type,
        log_to_file=log_to_file,
        log_file=log_file
    )
