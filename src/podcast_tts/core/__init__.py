"""
Core infrastructure for podcast-tts.

    - config.py: Settings loading and validation
    - errors.py: Error codes and exception taxonomy
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""
