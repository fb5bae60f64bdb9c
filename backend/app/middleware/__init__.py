from app.middleware.cors_preflight import CorsPreflightMiddleware
from app.middleware.request_log import RequestLoggingMiddleware

__all__ = ["CorsPreflightMiddleware", "RequestLoggingMiddleware"]
