from .cors import ALLOWED_METHODS, SUPPORTED_METHODS, gateway_cors_headers
from .dev_proxy import DevProxy
from .proxy import WebDAVGateway, decode_body

__all__ = [
    "ALLOWED_METHODS",
    "SUPPORTED_METHODS",
    "DevProxy",
    "WebDAVGateway",
    "decode_body",
    "gateway_cors_headers",
]
