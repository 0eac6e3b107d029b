"""Failure taxonomy of the encryption pipeline.

Each error carries the HTTP status it maps to and a short public failure
class. Messages end up in plain-text response bodies, so never put key
material in them.
"""
from __future__ import annotations


class GatewayError(Exception):
    status_code = 500
    failure_class = "internal server error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.failure_class)
        self.message = message or self.failure_class

    def public_message(self) -> str:
        if self.message == self.failure_class:
            return self.failure_class
        return f"{self.failure_class}: {self.message}"


# Client faults (400).


class MalformedRequestError(GatewayError):
    status_code = 400
    failure_class = "failed to parse multipart form"


class ClientDisconnectedError(MalformedRequestError):
    failure_class = "client disconnected"


class MissingFieldError(GatewayError):
    status_code = 400
    failure_class = "missing 'file' field"


# Server faults (500).


class ResourceAllocationError(GatewayError):
    failure_class = "failed to allocate workspace"


class StorageWriteError(GatewayError):
    failure_class = "failed to save uploaded file"


class StorageReadError(GatewayError):
    failure_class = "failed to open encrypted file"


class ArtifactNotFoundError(GatewayError):
    failure_class = "encrypted artifact not found"


class EncryptionEngineError(GatewayError):
    failure_class = "encryption failed"


class SerializationError(GatewayError):
    failure_class = "failed to serialize metadata"
