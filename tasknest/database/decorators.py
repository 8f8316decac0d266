#!/usr/bin/env python3
"""
decorators.py
--------------------
Shared decorators for database resilience operations.
"""
from datetime import datetime
from functools import wraps
from typing import Callable

from tasknest.core.logging_manager import safe_logger


def log_database_operation(operation_name: str):
    """
    Decorator to log database operations with timing and context.

    The wrapped method's instance must expose a ``logger`` attribute
    (a TaskNestLogger or None). Exceptions are logged and re-raised.

    Args:
        operation_name: Name of the operation being logged

    Returns:
        Decorator function
    """

    def decorator(function: Callable) -> Callable:
        @wraps(function)
        def wrapper(self, *args, **kwargs):
            logger = safe_logger(getattr(self, "logger", None))
            start_time = datetime.now()
            operation_id = f"{operation_name}_{start_time.strftime('%Y%m%d_%H%M%S_%f')}"

            logger.log_debug(
                f"Starting {operation_name}",
                {"operation_id": operation_id, "args": [str(a) for a in args]},
            )

            try:
                result = function(self, *args, **kwargs)
            except Exception as e:
                logger.log_error(
                    e,
                    {
                        "operation": operation_name,
                        "operation_id": operation_id,
                        "duration_seconds": (datetime.now() - start_time).total_seconds(),
                    },
                )
                raise

            details = {
                "operation_id": operation_id,
                "duration_seconds": (datetime.now() - start_time).total_seconds(),
            }
            success = getattr(result, "success", None)
            if success is not None:
                details["success"] = success
            logger.log_debug(f"{operation_name}_completed", details)
            return result

        return wrapper

    return decorator
