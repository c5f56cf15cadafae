"""Message and typed pipeline-log models."""

from src.models.build_log import BUILD_LOG_TYPE, BUILD_LOG_TYPE_TAG, BuildLogData
from src.models.code_changes import CodeChanges
from src.models.dependency_data import DependencyData
from src.models.instance_info import AdditionalInfoAgent, AdditionalInfoController
from src.models.messages import (
    AssistantMessage,
    Message,
    MessageMetadata,
    SystemMessage,
    UserMessage,
)
from src.models.records import LOG_TYPES, TypedLogRecord, parse_typed_log
from src.models.scan_result import ScanResult
from src.models.secret_detection import BUILD_LOG_SOURCE, SecretDetection
from src.models.typed_log import TypedLog

__all__ = [
    # Messages
    "Message",
    "MessageMetadata",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    # Typed logs
    "TypedLog",
    "TypedLogRecord",
    "BuildLogData",
    "CodeChanges",
    "SecretDetection",
    "ScanResult",
    "AdditionalInfoAgent",
    "AdditionalInfoController",
    "DependencyData",
    "parse_typed_log",
    # Constants
    "LOG_TYPES",
    "BUILD_LOG_TYPE",
    "BUILD_LOG_TYPE_TAG",
    "BUILD_LOG_SOURCE",
]
