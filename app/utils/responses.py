"""JSON envelopes shared by the API blueprints."""
from typing import Any, Dict, Iterable, Optional
from flask import jsonify

from app.exceptions import ValidationError
from app.services.entity_store import Page

STATUS_TEXT = {200: 'OK', 201: 'Created'}


def success(message: str, status_code: int = 200, **data: Any):
    """``{code, status, message, **data}`` with the given HTTP status."""
    body: Dict[str, Any] = {
        'code': status_code,
        'status': STATUS_TEXT.get(status_code, 'OK'),
        'message': message,
    }
    body.update(data)
    return jsonify(body), status_code


def paginated(message: str, page: Page, serialize=None):
    """Envelope for a listing page, including derived total_pages."""
    serialize = serialize or (lambda obj: obj.to_dict())
    return success(
        message,
        results=[serialize(obj) for obj in page.results],
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
        total_results=page.total_results,
    )


def serialize_all(objects: Iterable[Any], serialize=None) -> list:
    serialize = serialize or (lambda obj: obj.to_dict())
    return [serialize(obj) for obj in objects]


def request_json(request) -> Dict[str, Any]:
    """Parsed JSON body or an empty dict; a non-object body is a validation error."""
    data: Optional[Any] = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object', field='body')
    return data
