"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InputContractViolation(DomainException):
    """Caller-supplied data violates a precondition the engine cannot work around"""

    pass


class DimensionMismatchError(InputContractViolation):
    """Vectors or series that must be aligned have different lengths"""

    pass


class InvalidModelTypeError(InputContractViolation):
    """Requested model type is not one of the supported prediction targets"""

    pass


class InvalidWindowError(InputContractViolation):
    """Window size or forecast horizon is zero or negative"""

    pass


class TransactionSourceError(DomainException):
    """Transaction store returned an error or is unavailable"""

    pass


class ModelNotFoundError(DomainException):
    """No stored model snapshot matches the lookup"""

    pass


class ModelDeploymentError(DomainException):
    """Model does not meet the accuracy floor for deployment"""

    pass


class TrainingInterrupted(DomainException):
    """Training was cancelled or ran past its deadline"""

    pass


class TrainingDiverged(DomainException):
    """Gradient descent stopped converging (growing or non-finite loss)"""

    pass
