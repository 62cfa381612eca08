"""
Core infrastructure for tts-api.

    - config.py: Settings, defaults and validated configuration sections
    - errors.py: Error taxonomy shared by every layer
    - metrics.py: Prometheus metrics
    - logging/: Structured logging with request correlation
"""
