from .app import create_app
from .security import RateLimiter, SecurityHeadersMiddleware, client_ip

__all__ = ["RateLimiter", "SecurityHeadersMiddleware", "client_ip", "create_app"]
