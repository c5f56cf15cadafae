"""Service layer for ci-memory.

Provides the conversation store, its retention worker and the pipeline log
ingestion service.
"""

from src.services.chat_memory import DbChatMemory
from src.services.log_ingestion import IngestOutcome, LogIngestionService
from src.services.retention_worker import RetentionWorker

__all__ = [
    "DbChatMemory",
    "RetentionWorker",
    "LogIngestionService",
    "IngestOutcome",
]
