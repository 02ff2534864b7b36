from .messaging_service import MessagingService, UnitOfWork

__all__ = ["MessagingService", "UnitOfWork"]
