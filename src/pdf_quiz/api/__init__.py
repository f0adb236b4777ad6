from .app import create_app, parse_generate_request
from .server import build_application, build_gateways

__all__ = [
    "create_app",
    "parse_generate_request",
    "build_application",
    "build_gateways",
]
