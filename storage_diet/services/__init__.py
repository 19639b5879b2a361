from .ipfs import IpfsConfig, IpfsService, IpfsServiceError

__all__ = ['IpfsConfig', 'IpfsService', 'IpfsServiceError']
