from meetflow.schemas.common import ErrorResponse

__all__ = ["ErrorResponse"]
