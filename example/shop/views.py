from __future__ import annotations

import json

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from code_ledger import (
    CodeLedgerError,
    DuplicateCode,
    InsufficientStock,
    InvalidRequest,
    LockAcquireTimeout,
    Order,
    OrderLine,
    StorageError,
    get_ledger,
)


def _json(ok: bool, *, detail: str | None = None, status: int = 200, **payload) -> JsonResponse:
    """
    Small helper to keep responses consistent across endpoints.
    """
    body = {"ok": ok, **payload}
    if detail:
        body["detail"] = detail
    return JsonResponse(body, status=status)


def busy_409(exc: LockAcquireTimeout) -> JsonResponse:
    """
    Another checkout holds the product pool; the client may retry.
    """
    return _json(False, detail="busy, try again", code=exc.code, status=409)


def _error(exc: CodeLedgerError) -> JsonResponse:
    if isinstance(exc, InsufficientStock):
        return _json(
            False,
            detail="item unavailable in requested quantity",
            code=exc.code,
            productId=exc.product_id,
            requested=exc.requested,
            available=exc.available,
            status=409,
        )
    if isinstance(exc, DuplicateCode):
        return _json(False, detail=str(exc), code=exc.code, duplicates=list(exc.codes), status=409)
    if isinstance(exc, LockAcquireTimeout):
        return busy_409(exc)
    if isinstance(exc, StorageError):
        return _json(False, detail="storage unavailable", code=exc.code, status=503)
    return _json(False, detail=str(exc), code=exc.code, status=400)


def _order_payload(order: Order) -> dict:
    return {
        "orderId": order.order_id,
        "status": order.status.value,
        "deliveryCodes": {product_id: list(codes) for product_id, codes in order.delivery_codes.items()},
        "syntheticCodes": {product_id: list(codes) for product_id, codes in order.synthetic_codes.items()},
    }


def _read_json(request: HttpRequest) -> dict:
    try:
        data = json.loads(request.body or b"{}")
    except ValueError as e:
        raise InvalidRequest(f"Malformed JSON body: {e}") from e
    if not isinstance(data, dict):
        raise InvalidRequest("JSON body must be an object")
    return data


def _read_lines(raw: object) -> list[OrderLine]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(line, dict) for line in raw):
        raise InvalidRequest("lines must be a list of objects")
    return [OrderLine(product_id=str(line.get("productId", "")), quantity=line.get("quantity")) for line in raw]


@csrf_exempt  # demo-only: curl-friendly
@require_POST
def upload_codes(request: HttpRequest, product_id: str) -> HttpResponse:
    """
    Append one code per line of the request body to the product's pool.

    ``?strict=1`` rejects the whole upload when any code is already known.
    """
    strict = request.GET.get("strict") in {"1", "true", "yes"}
    try:
        report = get_ledger().load_codes(product_id, request.body.decode("utf-8"), strict=strict)
    except CodeLedgerError as exc:
        return _error(exc)
    return _json(
        True,
        productId=product_id,
        insertedCount=report.inserted_count,
        duplicateCount=report.duplicate_count,
        status=201,
    )


@csrf_exempt  # demo-only: curl-friendly
@require_POST
def checkout(request: HttpRequest) -> HttpResponse:
    """
    Fulfil a paid cart: ``{"orderId": "...", "lines": [{"productId": "...", "quantity": 2}]}``.

    Either every line gets its codes or none does.
    """
    try:
        data = _read_json(request)
        lines = _read_lines(data.get("lines"))
        order = get_ledger().place_order(str(data.get("orderId", "")), lines)
    except CodeLedgerError as exc:
        return _error(exc)
    return _json(True, status=201, **_order_payload(order))


@csrf_exempt  # demo-only: curl-friendly
@require_POST
def void_order(request: HttpRequest, order_id: str) -> HttpResponse:
    try:
        order = get_ledger().void_order(order_id)
    except CodeLedgerError as exc:
        return _error(exc)
    return _json(True, **_order_payload(order))


@require_GET
def product_stats(request: HttpRequest, product_id: str) -> HttpResponse:
    try:
        stats = get_ledger().get_stats(product_id)
    except CodeLedgerError as exc:
        return _error(exc)
    return _json(True, **stats.as_dict())


@require_GET
def all_stats(request: HttpRequest) -> HttpResponse:
    try:
        stats = get_ledger().all_stats()
    except CodeLedgerError as exc:
        return _error(exc)
    return _json(True, products=[entry.as_dict() for entry in stats])


@require_GET
def export_codes(request: HttpRequest, product_id: str) -> HttpResponse:
    """Operator download: "Non-sold" and "Sold" sections, one code per line."""
    try:
        content = get_ledger().export_codes(product_id)
    except CodeLedgerError as exc:
        return _error(exc)
    response = HttpResponse(content, content_type="text/plain; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{product_id or "codes"}.txt"'
    return response
