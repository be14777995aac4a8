"""HTTP transport and object-store REST calls for the Azure mover."""

from .blob import BlobProperties, BlobServiceClient, make_block_id
from .client import create_http_client

__all__ = ["BlobProperties", "BlobServiceClient", "create_http_client", "make_block_id"]
