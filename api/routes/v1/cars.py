"""
api/routes/v1/cars.py -- Car listing routes for the CarListings REST API.

Routes:
  POST   /cars              -- create a listing (auth required, multipart)
  GET    /cars              -- list all listings, optional ?search= (public)
  GET    /cars/{car_id}     -- listing detail (public)
  PATCH  /cars/{car_id}     -- partial update by the owner (multipart)
  DELETE /cars/{car_id}     -- delete by the owner

Visibility policy: listings are public. Anyone may list and read any car;
only the owner may change or delete it. Update and delete pass the caller's
id to the store, which matches on (car_id, user_id) in a single statement.
A car owned by someone else is reported as 404, exactly like a missing one.

Multipart fields:
  title, description -- text
  tags               -- comma-delimited string, e.g. "sedan,compact"
  images             -- 0..10 image files, each at most MAX_IMAGE_BYTES

Images are uploaded to the media store before the database write. If any
upload fails, the images already stored for this request are removed and the
request fails with 500 -- no record is written with missing images. If the
database write fails or matches nothing, the new images are removed as well.
Images replaced by a PATCH, and the images of a deleted car, are removed from
the media store after the database change succeeds.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from api.models import CarCreate, CarPatch, CarResponse, ErrorDetail
from auth.dependencies import get_current_user
from auth.models import User
from cars.media import MediaStore, MediaUploadError
from cars.models import MAX_IMAGES, Car
from cars.store import CarStore, filter_cars

logger = logging.getLogger("carlistings.cars")

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found(car_id: int) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="car_not_found", message=f"Car {car_id} not found.").model_dump(),
    )


def _validate_form(model, fields: dict):
    """Validate multipart form fields against a Pydantic model.

    Form fields that were not sent arrive as None and are dropped, so a
    missing required field reports "Field required" rather than a type error.
    Failures are re-raised as RequestValidationError so they reach the same
    422 handler as JSON body errors.
    """
    try:
        return model.model_validate({k: v for k, v in fields.items() if v is not None})
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


def _read_images(files: Optional[list[UploadFile]], max_bytes: int) -> list[tuple[bytes, str, str]]:
    """Read and check uploaded image parts before anything is stored.

    Empty file inputs (no filename, no bytes) are ignored -- browsers send one
    when the user picks no file. Returns (data, filename, content_type) tuples
    in upload order.
    """
    images: list[tuple[bytes, str, str]] = []
    for upload in files or []:
        data = upload.file.read(max_bytes + 1)
        if not upload.filename and not data:
            continue
        if len(data) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=ErrorDetail(
                    code="file_too_large",
                    message=f"Each image must be {max_bytes} bytes or smaller.",
                ).model_dump(),
            )
        content_type = upload.content_type or ""
        if not content_type.startswith("image/"):
            raise RequestValidationError(
                [
                    {
                        "type": "value_error",
                        "loc": ("images",),
                        "msg": f"{(upload.filename or 'file')[:100]} is not an image",
                        "input": content_type,
                    }
                ]
            )
        images.append((data, upload.filename or "", content_type))

    if len(images) > MAX_IMAGES:
        raise RequestValidationError(
            [
                {
                    "type": "too_long",
                    "loc": ("images",),
                    "msg": f"At most {MAX_IMAGES} images are allowed",
                    "input": len(images),
                }
            ]
        )
    return images


def _discard_images(media: MediaStore, urls: list[str]) -> None:
    """Best-effort removal of images stored earlier in a failed request."""
    for url in urls:
        try:
            media.delete(url)
        except MediaUploadError:
            logger.warning("Could not remove orphaned image %s", url, exc_info=True)


def upload_images(media: MediaStore, images: list[tuple[bytes, str, str]]) -> list[str]:
    """Store every image in order and return their URLs.

    All-or-nothing: if one upload fails, the images already stored for this
    call are removed and MediaUploadError propagates.
    """
    urls: list[str] = []
    for data, filename, content_type in images:
        try:
            urls.append(media.save(data, filename, content_type))
        except MediaUploadError:
            _discard_images(media, urls)
            raise
    return urls


# ---------------------------------------------------------------------------
# POST /cars -- create a listing
# ---------------------------------------------------------------------------


@router.post("/cars", response_model=CarResponse, status_code=201)
def create_car(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    images: Optional[list[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
) -> CarResponse:
    """Create a car listing owned by the caller.

    The owner id and username snapshot come from the verified token, never
    from the form.
    """
    body: CarCreate = _validate_form(CarCreate, {"title": title, "description": description, "tags": tags})
    pending = _read_images(images, request.app.state.max_image_bytes)

    cars: CarStore = request.app.state.car_store
    media: MediaStore = request.app.state.media
    image_urls = upload_images(media, pending)

    car = Car(
        user_id=current_user.id,
        username=current_user.username,
        title=body.title,
        description=body.description,
        tags=body.tags,
        images=image_urls,
    )
    try:
        car_id = cars.create_car(car)
    except SQLAlchemyError:
        _discard_images(media, image_urls)
        raise

    created = cars.get_car(car_id)
    if created is None:
        # Removed between the insert and the read-back.
        raise _not_found(car_id)
    logger.info("User %r created car %d with %d image(s)", current_user.username, car_id, len(image_urls))
    return CarResponse.from_car(created)


# ---------------------------------------------------------------------------
# GET /cars -- list all listings
# ---------------------------------------------------------------------------


@router.get("/cars", response_model=list[CarResponse])
def list_cars(
    request: Request,
    search: Optional[str] = Query(default=None, max_length=100),
) -> list[CarResponse]:
    """Return every listing, newest first.

    ?search= keeps only cars whose title, description or a tag contains the
    term (case-insensitive).
    """
    cars: CarStore = request.app.state.car_store
    return [CarResponse.from_car(c) for c in filter_cars(cars.list_cars(), search)]


# ---------------------------------------------------------------------------
# GET /cars/{car_id} -- listing detail
# ---------------------------------------------------------------------------


@router.get("/cars/{car_id}", response_model=CarResponse)
def get_car(request: Request, car_id: int) -> CarResponse:
    """Return one listing by id."""
    cars: CarStore = request.app.state.car_store
    car = cars.get_car(car_id)
    if car is None:
        raise _not_found(car_id)
    return CarResponse.from_car(car)


# ---------------------------------------------------------------------------
# PATCH /cars/{car_id} -- owner-only partial update
# ---------------------------------------------------------------------------


@router.patch("/cars/{car_id}", response_model=CarResponse)
def update_car(
    request: Request,
    car_id: int,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    images: Optional[list[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
) -> CarResponse:
    """Replace the provided fields on a car the caller owns.

    Omitted fields keep their stored value. Uploaded images replace the whole
    image list. Sending tags="," clears the tags. Returns 404 when the car is
    missing or owned by someone else.
    """
    patch: CarPatch = _validate_form(CarPatch, {"title": title, "description": description, "tags": tags})
    pending = _read_images(images, request.app.state.max_image_bytes)

    fields = patch.model_dump(exclude_none=True)
    if not fields and not pending:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="no_changes", message="No fields to update.").model_dump(),
        )

    cars: CarStore = request.app.state.car_store
    media: MediaStore = request.app.state.media
    new_urls: list[str] = []
    old_urls: list[str] = []
    if pending:
        current = cars.get_car(car_id)
        old_urls = current.images if current is not None else []
        new_urls = upload_images(media, pending)
        fields["images"] = new_urls

    try:
        updated = cars.update_car(car_id, current_user.id, **fields)
    except SQLAlchemyError:
        _discard_images(media, new_urls)
        raise

    if updated is None:
        _discard_images(media, new_urls)
        raise _not_found(car_id)

    # The replaced images are no longer referenced by any car.
    _discard_images(media, [url for url in old_urls if url not in new_urls])

    logger.info("User %r updated car %d (%s)", current_user.username, car_id, ", ".join(sorted(fields)))
    return CarResponse.from_car(updated)


# ---------------------------------------------------------------------------
# DELETE /cars/{car_id} -- owner-only delete
# ---------------------------------------------------------------------------


@router.delete("/cars/{car_id}", status_code=204)
def delete_car(
    request: Request,
    car_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete a car the caller owns. 404 if missing or owned by someone else.

    The car's images are removed from the media store once the row is gone.
    """
    cars: CarStore = request.app.state.car_store
    existing = cars.get_car(car_id)
    removed = cars.delete_car(car_id, current_user.id)
    if not removed:
        raise _not_found(car_id)
    if existing is not None:
        _discard_images(request.app.state.media, existing.images)
    logger.info("User %r deleted car %d", current_user.username, car_id)
    return Response(status_code=204)
