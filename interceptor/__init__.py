"""Model Interceptor - serve pre-staged downloads in place of their original URLs."""

__version__ = "1.0.0"
