import logging
import time
import json
import inspect
from collections import deque
from functools import wraps
from datetime import datetime

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# samples kept per metric series; older ones are dropped
METRIC_WINDOW = 1000

class Telemetry:
    """Per-component structured logging plus in-process metric samples."""

    def __init__(self, component_name, max_samples=METRIC_WINDOW):
        self.logger = logging.getLogger(component_name)
        self.max_samples = max_samples
        self.metrics = {}

    def _format(self, message, kwargs):
        extra = json.dumps(kwargs, default=str) if kwargs else ""
        return f"{message} {extra}".rstrip()

    def log_info(self, message, **kwargs):
        self.logger.info(self._format(message, kwargs))

    def log_error(self, message, error=None, **kwargs):
        kwargs['error'] = str(error) if error else None
        self.logger.error(self._format(message, kwargs))

    def log_warning(self, message, **kwargs):
        self.logger.warning(self._format(message, kwargs))

    def track_metric(self, metric_name, value):
        self.metrics.setdefault(metric_name, deque(maxlen=self.max_samples)).append({
            'value': value,
            'timestamp': datetime.now().isoformat()
        })

    def _finish(self, operation_name, start, error=None):
        duration = time.time() - start
        if error is None:
            self.log_info(f"{operation_name} completed", duration_ms=round(duration * 1000, 2))
            self.track_metric(f"{operation_name}_duration", duration)
        else:
            self.log_error(f"{operation_name} failed", error=error, duration_ms=round(duration * 1000, 2))

    def time_operation(self, operation_name):
        """Decorator to time operations. Works for plain and async callables."""
        def decorator(func):
            if inspect.iscoroutinefunction(func):
                @wraps(func)
                async def async_wrapper(*args, **kwargs):
                    start = time.time()
                    try:
                        result = await func(*args, **kwargs)
                    except Exception as e:
                        self._finish(operation_name, start, error=e)
                        raise
                    self._finish(operation_name, start)
                    return result
                return async_wrapper

            @wraps(func)
            def wrapper(*args, **kwargs):
                start = time.time()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    self._finish(operation_name, start, error=e)
                    raise
                self._finish(operation_name, start)
                return result
            return wrapper
        return decorator

# Global telemetry instances
telemetry_instances = {}

def get_telemetry(component_name):
    """Get or create telemetry instance for a component"""
    if component_name not in telemetry_instances:
        telemetry_instances[component_name] = Telemetry(component_name)
    return telemetry_instances[component_name]
