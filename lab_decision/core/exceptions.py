"""
Custom exceptions for the Lab Decision Engine
"""


class LabEngineException(Exception):
    """Base exception for all engine errors"""

    def __init__(self, message: str, error_code: str = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class NotFoundError(LabEngineException):
    """A sample, rule or other record does not exist"""

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found", error_code="not_found")


class ValidationError(LabEngineException):
    """Malformed rule definition or request payload"""

    def __init__(self, message: str, errors: list = None):
        self.errors = errors or []
        super().__init__(message, error_code="validation_error")


class StorageError(LabEngineException):
    """Read or write failure in the data store"""

    def __init__(self, message: str):
        super().__init__(message, error_code="storage_error")


class ConfigurationException(LabEngineException):
    """Configuration-related exceptions"""
    pass
