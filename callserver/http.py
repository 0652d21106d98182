import json
import logging
from functools import wraps
from typing import Tuple

from django.http import HttpResponseNotAllowed, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from .errors import CallServerError, InvalidArgument

logger = logging.getLogger("callserver")


def json_body(request) -> Tuple[dict, JsonResponse]:
    try:
        body = request.body.decode("utf-8") if request.body else "{}"
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data, None
    except (json.JSONDecodeError, ValueError) as exc:
        return None, JsonResponse({"error": f"invalid_json: {exc}"}, status=400)


def require_fields(data: dict, *keys):
    missing = [key for key in keys if not data.get(key)]
    if missing:
        raise InvalidArgument(f"{', '.join(keys)} are required", code="missing_fields")


def error_response(exc: CallServerError) -> JsonResponse:
    return JsonResponse(exc.as_dict(), status=exc.status)


def endpoint(tag: str, methods=("POST",)):
    """
    JSON endpoint wrapper: method check, request logging and typed error
    mapping. Unexpected exceptions are logged and reported as internal.
    """
    allowed = list(methods)

    def decorator(view):
        @csrf_exempt
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            logger.info(f"[{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

            if request.method not in allowed:
                return HttpResponseNotAllowed(allowed)

            try:
                return view(request, *args, **kwargs)
            except CallServerError as exc:
                log = logger.error if exc.status >= 500 else logger.warning
                log(f"[{tag}] {exc.code}: {exc.message}")
                return error_response(exc)
            except Exception:
                logger.exception(f"[{tag}] Unexpected error")
                return JsonResponse({"error": "internal", "message": "Internal error"}, status=500)

        return wrapper

    return decorator
