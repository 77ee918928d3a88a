from pathlib import Path

from fastapi import APIRouter, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, ValidationError

from backend.artifact import render_png
from backend.services.attendance import (
    artifact_options,
    check_in,
    check_out,
    checkout_url,
    get_record,
    list_records,
)

router = APIRouter(prefix="/api/attendance")

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parents[1] / "templates"))

FORM_MEDIA_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class CheckInPayload(BaseModel):
    """Arbitrary JSON object; every key lands in the record's extra fields."""

    model_config = ConfigDict(extra="allow")


def _accept_quality(accept: str, media_type: str) -> float:
    """q-value the Accept header gives `media_type`; the most specific matching range wins."""
    family = media_type.split("/", 1)[0]
    best_specificity, best_q = -1, 0.0
    for entry in accept.split(","):
        params = [p.strip() for p in entry.split(";")]
        media_range = params[0].lower()
        if media_range == media_type:
            specificity = 2
        elif media_range == f"{family}/*":
            specificity = 1
        elif media_range == "*/*":
            specificity = 0
        else:
            continue

        q = 1.0
        for param in params[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value.strip())
                except ValueError:
                    q = 0.0
        if specificity > best_specificity:
            best_specificity, best_q = specificity, q
    return best_q


def _wants_html(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    html_q = _accept_quality(accept, "text/html")
    return html_q > 0 and html_q > _accept_quality(accept, "application/json")


async def _read_extra_fields(request: Request) -> dict:
    content_type = request.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if content_type in FORM_MEDIA_TYPES:
        form = await request.form()
        return dict(form.items())

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        payload = CheckInPayload.model_validate_json(raw)
    except ValidationError as e:
        errors = [{**err, "loc": ("body", *err["loc"])} for err in e.errors(include_url=False)]
        raise RequestValidationError(errors) from e
    return dict(payload.model_extra or {})


@router.post("", status_code=201)
async def create_attendance(request: Request):
    extra = await _read_extra_fields(request)
    record, url = await run_in_threadpool(check_in, extra)

    view = {
        "code": record["code"],
        "artifact": record["artifact"],
        "url": url,
        "createdAt": record["createdAt"],
        "updatedAt": record["updatedAt"],
    }
    if _wants_html(request):
        return TEMPLATES.TemplateResponse(request, "code_view.html", view, status_code=201)
    return {"success": True, **view}


@router.get("")
def attendance_list():
    records = list_records()
    return {
        "success": True,
        "data": records,
        "count": len(records),
    }


@router.get("/{code}")
def attendance_detail(code: str):
    return {"success": True, "data": get_record(code)}


@router.get("/{code}/artifact")
def attendance_artifact(code: str):
    # Regenerated from the code; the stored artifact is only a cache.
    get_record(code)
    png = render_png(checkout_url(code), **artifact_options())
    return Response(content=png, media_type="image/png")


@router.put("/{code}")
def attendance_checkout(code: str):
    record = check_out(code)
    return {
        "success": True,
        "message": "Checkout recorded successfully",
        "data": record,
    }
