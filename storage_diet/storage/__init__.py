"""
Storage management initialization.
"""
from .s3_utils import S3Storage, S3StorageConfig, S3ConnectionError, PrefixDeleteResult
from .inventory import RenditionInventory, RenditionAnalysis
from .hls import Rendition
from ..utils.config import get_section


def create_s3_storage(config):
    """Create S3 storage instance from the full config dict"""
    s3_config = S3StorageConfig.from_dict(get_section(config, 'storage', 's3'))
    return S3Storage(s3_config)


__all__ = ['create_s3_storage', 'S3Storage', 'S3StorageConfig', 'S3ConnectionError',
           'PrefixDeleteResult', 'RenditionInventory', 'RenditionAnalysis', 'Rendition']
