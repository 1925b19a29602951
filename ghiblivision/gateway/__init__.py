"""
Image Gateway Module
Multi-provider Ghibli-style image transformation.
"""
from .clients import ErrorKind, Provider, TransformResult
from .config import GatewayConfig
from .service import GatewayError, ImageGateway, TransformRequest

__all__ = [
    "ErrorKind",
    "GatewayConfig",
    "GatewayError",
    "ImageGateway",
    "Provider",
    "TransformRequest",
    "TransformResult",
]
