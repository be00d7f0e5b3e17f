from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from typing import Any, Callable, Dict, List, Optional


class APIException(Exception):
    """ Base class for all exceptions in the ServiceHub API. """

    code = "api_error"
    default_detail = "Something went wrong."

    def __init__(self, detail: Optional[str] = None, **context: Any):
        self.detail = detail or self.default_detail
        self.context = context
        super().__init__(self.detail)


class ActorRequiredException(APIException):
    """ Exception is raised when a request arrives without the identity gateway's actor headers. """

    code = "authentication_required"
    default_detail = "Authentication required!"


class UnauthorizedActionException(APIException):
    """ Exception is raised when the actor's role may not perform the requested operation. """

    code = "unauthorized"
    default_detail = "You are not allowed to perform this action."


class QuoteOnlyServiceException(APIException):
    """ Exception is raised when a service without a resolvable price is added to a cart. """

    code = "quote_only_service"
    default_detail = "This service has no fixed price. Please request a quote instead."

    def __init__(self, service_id: int):
        super().__init__(service_id=service_id)


class IllegalTransitionException(APIException):
    """ Exception is raised when a booking status change is not in the transition table. """

    code = "illegal_transition"

    def __init__(self, from_status: Any, to_status: Any):
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot move from '{from_value}' to '{to_value}'.",
            from_status=from_value,
            to_status=to_value,
        )


class StaleCartItemException(APIException):
    """ Exception is raised when checkout targets a cart item that no longer exists. """

    code = "stale_cart_item"
    default_detail = "This cart item was already checked out or removed."

    def __init__(self, item_id: int):
        super().__init__(item_id=item_id)


class ConcurrentModificationException(APIException):
    """ Exception is raised when a guarded update lost a race. Safe to retry with fresh data. """

    code = "concurrent_modification"
    default_detail = "The record was changed by someone else. Please reload and try again."


class DependencyBlockedException(APIException):
    """ Exception is raised when a catalog entity still has transactional dependents. """

    code = "dependency_blocked"
    default_detail = "This item cannot be deleted while records depend on it."

    def __init__(self, warnings: List[str], detail: Optional[str] = None):
        super().__init__(detail, warnings=list(warnings))


class UpstreamServiceException(APIException):
    """ Exception is raised when an external collaborator (e.g. chat) cannot be reached. """

    code = "upstream_unavailable"
    default_detail = "A dependent service is unavailable."


class NotFoundException(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestException(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def create_exception_handler(status_code: int, detail: Any = None) -> Callable[[Request, Exception], JSONResponse]:
    async def exception_handler(request: Request, exception: APIException):
        content: Dict[str, Any] = {
            "detail": detail or exception.detail,
            "code": exception.code,
        }
        content.update(exception.context)

        return JSONResponse(
            content=content,
            status_code=status_code
        )

    return exception_handler
