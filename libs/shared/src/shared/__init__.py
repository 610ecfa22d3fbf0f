from .schemas import ErrorResponse
from .request_context import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = ["ErrorResponse", "REQUEST_ID_HEADER", "RequestIDMiddleware"]
