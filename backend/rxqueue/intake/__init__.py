from .factory import get_adapter
from .processor import ingest_invoice

__all__ = ['get_adapter', 'ingest_invoice']
