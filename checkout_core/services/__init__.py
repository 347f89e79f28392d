"""Email and storage providers and the service factory."""
from .email import (
    DemoEmailService,
    EmailAttachment,
    EmailMessage,
    EmailResult,
    EmailService,
    SendGridEmailService,
    SesEmailService,
)
from .factory import ServiceFactory
from .storage import (
    CloudinaryStorageService,
    LocalStorageService,
    S3StorageService,
    StorageFile,
    StorageResult,
    StorageService,
)

__all__ = [
    "CloudinaryStorageService",
    "DemoEmailService",
    "EmailAttachment",
    "EmailMessage",
    "EmailResult",
    "EmailService",
    "LocalStorageService",
    "S3StorageService",
    "SendGridEmailService",
    "SesEmailService",
    "ServiceFactory",
    "StorageFile",
    "StorageResult",
    "StorageService",
]
