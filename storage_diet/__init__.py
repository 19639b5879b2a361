"""storage-diet: keep only the smallest HLS rendition of old S3-hosted videos."""

__version__ = "0.1.0"
