from .factory import get_pharmacy_client

__all__ = ['get_pharmacy_client']
