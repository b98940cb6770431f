"""
Structured logging system for rostersync.

Provides centralized logging with console and file outputs, plus per-run
counters (matches, decisions, writes) for monitoring sync health.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring registry sync runs.
    """

    def __init__(
        self,
        name: str = "rostersync",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self.metrics = self._empty_metrics()

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"rostersync_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    @staticmethod
    def _empty_metrics() -> dict:
        return {
            "api_calls": 0,
            "rows_processed": 0,
            "rows_matched": 0,
            "writes_attempted": 0,
            "writes_succeeded": 0,
            "writes_failed": 0,
            "decisions": {},
            "match_types": {},
        }

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        """Increment registry API call counter."""
        self.metrics["api_calls"] += 1

    def record_row(self, decision: str, match_type: Optional[str] = None):
        """Record one processed row and the decision reached for it."""
        self.metrics["rows_processed"] += 1
        if match_type:
            self.metrics["rows_matched"] += 1
            types = self.metrics["match_types"]
            types[match_type] = types.get(match_type, 0) + 1
        decisions = self.metrics["decisions"]
        decisions[decision] = decisions.get(decision, 0) + 1

    def record_write(self, success: bool):
        """Record a registry write attempt and its outcome."""
        self.metrics["writes_attempted"] += 1
        if success:
            self.metrics["writes_succeeded"] += 1
        else:
            self.metrics["writes_failed"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = dict(self.metrics)
        metrics_copy["decisions"] = dict(self.metrics["decisions"])
        metrics_copy["match_types"] = dict(self.metrics["match_types"])
        processed = metrics_copy["rows_processed"]
        metrics_copy["match_rate"] = round(metrics_copy["rows_matched"] / processed, 3) if processed else 0.0
        return metrics_copy

    def reset_metrics(self):
        """Start a fresh set of counters (one per sync run)."""
        self.metrics = self._empty_metrics()

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Sync Run Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Rows: {metrics['rows_matched']}/{metrics['rows_processed']} matched "
            f"({metrics['match_rate'] * 100:.1f}%)"
        )
        self.info(
            f"Writes: {metrics['writes_succeeded']}/{metrics['writes_attempted']} succeeded, "
            f"{metrics['writes_failed']} failed"
        )

        if metrics["match_types"]:
            self.info("Match Types:")
            for match_type, count in metrics["match_types"].items():
                self.info(f"  {match_type}: {count}")

        if metrics["decisions"]:
            self.info("Decisions:")
            for decision, count in metrics["decisions"].items():
                self.info(f"  {decision}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "rostersync",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
