from .s3_transport import S3Transport

__all__ = ["S3Transport"]
