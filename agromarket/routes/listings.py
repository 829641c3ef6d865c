"""
API route handlers for listings endpoints.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, Request, UploadFile,
)
from pydantic import ValidationError as PydanticValidationError

from ..context import AppContext, get_context
from ..errors import NotFoundError, ValidationError, validation_error_from
from ..listing_query import ListingQuery, ensure_owner, reconcile_images
from ..models import (
    ListingOut, ListingPayload, ListingUpdateResponse, MessageBody, MessageOut,
    MessageSentResponse, StatusMessage,
)
from ..security import get_current_user
from ..uploads import LISTING_IMAGE_TYPES, public_url

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/listings", tags=["listings"])

EDITABLE_FIELDS = ("title", "description", "price", "category", "condition", "location", "is_negotiable")
IMAGE_TYPE_ERROR = "Images Only! (jpeg, jpg, png, gif)"
MAX_MESSAGE_LENGTH = 500


def get_listing_query(
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    limit: Optional[str] = None,
) -> ListingQuery:
    """Dependency collecting the raw search parameters.

    Parameters arrive as strings and are interpreted leniently: unusable
    values are treated as absent rather than rejected.
    """
    return ListingQuery.from_params({
        "search": search,
        "category": category,
        "minPrice": min_price,
        "maxPrice": max_price,
        "sortBy": sort_by,
        "limit": limit,
    })


def listing_out(request: Request, listing: Dict[str, Any]) -> ListingOut:
    data = dict(listing)
    data["images"] = [public_url(request, path) for path in listing["images"]]
    return ListingOut(**data)


def build_listing_payload(raw: Dict[str, Any]) -> ListingPayload:
    try:
        return ListingPayload.model_validate({k: v for k, v in raw.items() if v is not None})
    except PydanticValidationError as e:
        raise validation_error_from(e)


def check_image_count(images: List[UploadFile], limit: int) -> List[UploadFile]:
    files = [upload for upload in images if upload.filename]
    if len(files) > limit:
        raise ValidationError(f"Too many images: at most {limit} files per request")
    return files


@router.get("", response_model=List[ListingOut])
async def get_listings(
    request: Request,
    query: ListingQuery = Depends(get_listing_query),
    ctx: AppContext = Depends(get_context),
):
    """Search listings with filtering and sorting."""
    try:
        return [listing_out(request, item) for item in ctx.db.get_listings(query)]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching listings: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/my", response_model=List[ListingOut])
async def get_my_listings(
    request: Request,
    query: ListingQuery = Depends(get_listing_query),
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Listings owned by the caller."""
    try:
        query.seller_id = user["id"]
        return [listing_out(request, item) for item in ctx.db.get_listings(query)]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching listings of user {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{listing_id}", response_model=ListingOut)
async def get_listing(
    listing_id: str,
    request: Request,
    ctx: AppContext = Depends(get_context),
):
    """Get a specific listing by ID."""
    try:
        listing = ctx.db.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing not found")
        return listing_out(request, listing)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching listing {listing_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("", response_model=ListingOut, status_code=201)
async def create_listing(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    condition: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    is_negotiable: Optional[str] = Form(None, alias="isNegotiable"),
    images: Optional[List[UploadFile]] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Create a listing owned by the caller, with up to five images."""
    stored: List[str] = []
    try:
        if not title or not location or not category or not description or price is None:
            raise ValidationError(
                "Missing required fields: title, location, category, description, "
                "and price are mandatory."
            )

        payload = build_listing_payload({
            "title": title,
            "description": description,
            "price": price,
            "category": category,
            "condition": condition,
            "location": location,
            "is_negotiable": is_negotiable == "true",
        })
        files = check_image_count(images or [], ctx.config.MAX_LISTING_IMAGES)
        stored = await ctx.images.save_all(files, LISTING_IMAGE_TYPES, IMAGE_TYPE_ERROR)

        listing_id = ctx.db.insert_listing(payload.model_dump(mode="json"), stored, user["id"])
        logger.info(f"User {user['id']} created listing {listing_id} with {len(stored)} images")
        return listing_out(request, ctx.db.get_listing(listing_id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating listing: {e}", exc_info=True)
        ctx.images.remove_all(stored)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/{listing_id}", response_model=ListingUpdateResponse)
async def update_listing(
    listing_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    condition: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    is_negotiable: Optional[str] = Form(None, alias="isNegotiable"),
    existing_images: Optional[List[str]] = Form(None, alias="existingImages"),
    images: Optional[List[UploadFile]] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Update a listing owned by the caller.

    Stored images not named in ``existingImages`` are removed; new uploads
    are appended after the retained ones. Updates and deletes of one listing
    are serialized.
    """
    try:
        async with ctx.listing_locks.get(listing_id):
            listing = ctx.db.get_listing(listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")
            ensure_owner(
                listing["seller_id"], user["id"],
                "Not authorized to update this listing. You are not the owner.",
            )

            merged = {key: listing[key] for key in EDITABLE_FIELDS}
            supplied = {
                "title": title,
                "description": description,
                "price": price,
                "category": category,
                "condition": condition,
                "location": location,
            }
            merged.update({k: v for k, v in supplied.items() if v is not None})
            if is_negotiable is not None:
                merged["is_negotiable"] = is_negotiable == "true"
            payload = build_listing_payload(merged)

            files = check_image_count(images or [], ctx.config.MAX_LISTING_IMAGES)
            uploaded = await ctx.images.save_all(files, LISTING_IMAGE_TYPES, IMAGE_TYPE_ERROR)
            updated_images, removed = reconcile_images(listing["images"], existing_images or [], uploaded)

            ctx.db.update_listing(listing_id, payload.model_dump(mode="json"), updated_images)
            background_tasks.add_task(ctx.images.remove_all, removed)
            logger.info(
                f"Listing {listing_id} updated: {len(uploaded)} images added, {len(removed)} removed"
            )
            updated = ctx.db.get_listing(listing_id)

        return ListingUpdateResponse(
            message="Listing updated successfully",
            listing=listing_out(request, updated),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating listing {listing_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/{listing_id}", response_model=StatusMessage)
async def delete_listing(
    listing_id: str,
    background_tasks: BackgroundTasks,
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Delete a listing owned by the caller together with its image files."""
    try:
        async with ctx.listing_locks.get(listing_id):
            listing = ctx.db.get_listing(listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")
            ensure_owner(
                listing["seller_id"], user["id"],
                "Not authorized to delete this listing. You are not the owner.",
            )

            ctx.db.delete_listing(listing_id)
            background_tasks.add_task(ctx.images.remove_all, listing["images"])
            logger.info(f"Listing {listing_id} deleted by {user['id']}")

        return StatusMessage(message="Listing deleted successfully")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting listing {listing_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{listing_id}/message", response_model=MessageSentResponse, status_code=201)
async def send_message(
    listing_id: str,
    body: Optional[MessageBody] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Send a message from the caller to the seller of a listing."""
    try:
        content = (body.content if body else None) or ""
        content = content.strip()
        if not content:
            raise ValidationError("Message content cannot be empty.")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message content too long (max {MAX_MESSAGE_LENGTH} characters).")

        listing = ctx.db.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing not found.")

        if str(user["id"]) == str(listing["seller_id"]):
            raise ValidationError("You cannot send a message to yourself about your own listing.")

        message_id = ctx.db.insert_message(
            sender_id=user["id"],
            recipient_id=listing["seller_id"],
            listing_id=listing_id,
            content=content,
        )
        return MessageSentResponse(
            message="Message sent successfully!",
            data=MessageOut(**ctx.db.get_message(message_id)),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending message about listing {listing_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
