"""API middleware modules."""

from .auth import JWTBearer, extract_client_ip, get_current_principal

__all__ = ["JWTBearer", "extract_client_ip", "get_current_principal"]
