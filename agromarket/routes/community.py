"""
Discussion board route handlers.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from ..context import AppContext, get_context
from ..errors import NotFoundError, ValidationError
from ..listing_query import ensure_owner, parse_limit
from ..models import CommunityStats, DeletedPost, DiscussionPostOut
from ..security import get_current_user
from ..uploads import DISCUSSION_IMAGE_TYPES

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/community", tags=["community"])

IMAGE_TYPE_ERROR = "Only image files are allowed."


async def store_post_image(ctx: AppContext, image: Optional[UploadFile]) -> Optional[str]:
    """Save an attached image and return its ``/uploads/...`` URL, if any."""
    if image is None or not image.filename:
        return None
    stored = await ctx.images.save_all([image], DISCUSSION_IMAGE_TYPES, IMAGE_TYPE_ERROR, prefix="image")
    return "/" + stored[0]


def load_post(ctx: AppContext, post_id: str) -> Dict[str, Any]:
    post = ctx.db.get_post(post_id)
    if post is None:
        raise NotFoundError("Discussion post not found")
    return post


@router.get("/discussions", response_model=List[DiscussionPostOut])
async def get_discussions(limit: Optional[str] = None, ctx: AppContext = Depends(get_context)):
    """Newest discussion posts first; ``limit`` caps the count when positive."""
    try:
        return [DiscussionPostOut(**post) for post in ctx.db.get_posts(parse_limit(limit))]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching discussion posts: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/discussions", response_model=DiscussionPostOut, status_code=201)
async def create_discussion(
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    image_url: Optional[str] = Form(None, alias="imageUrl"),
    image: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Start a discussion; an uploaded image wins over an ``imageUrl`` string."""
    try:
        if not title or not content:
            raise ValidationError("Please add a title and content for the discussion post")

        stored_url = await store_post_image(ctx, image)
        post_id = ctx.db.insert_post(
            title=title,
            content=content,
            image_url=stored_url or image_url or "",
            author_id=user["id"],
        )
        logger.info(f"User {user['id']} created discussion post {post_id}")
        return DiscussionPostOut(**ctx.db.get_post(post_id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating discussion post: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/discussions/{post_id}", response_model=DiscussionPostOut)
async def get_discussion(post_id: str, ctx: AppContext = Depends(get_context)):
    try:
        return DiscussionPostOut(**load_post(ctx, post_id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching discussion post {post_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/discussions/{post_id}", response_model=DiscussionPostOut)
async def update_discussion(
    post_id: str,
    request: Request,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Edit a post; only its author may do so.

    The image changes only when a file or an ``imageUrl`` field is sent; an
    empty ``imageUrl`` clears it.
    """
    try:
        post = load_post(ctx, post_id)
        ensure_owner(post["author_id"], user["id"], "User not authorized to update this post")

        if not title or not content:
            raise ValidationError("Title and content cannot be empty.")

        fields: Dict[str, Any] = {"title": title, "content": content}
        stored_url = await store_post_image(ctx, image)
        if stored_url is not None:
            fields["image_url"] = stored_url
        else:
            form = await request.form()
            if "imageUrl" in form:
                fields["image_url"] = form.get("imageUrl") or ""

        ctx.db.update_post(post_id, fields)
        return DiscussionPostOut(**ctx.db.get_post(post_id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating discussion post {post_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/discussions/{post_id}", response_model=DeletedPost)
async def delete_discussion(
    post_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    try:
        post = load_post(ctx, post_id)
        ensure_owner(post["author_id"], user["id"], "User not authorized to delete this post")

        ctx.db.delete_post(post_id)
        logger.info(f"Discussion post {post_id} deleted by {user['id']}")
        return DeletedPost(message="Discussion post deleted successfully", id=post_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting discussion post {post_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/stats", response_model=CommunityStats)
async def get_community_stats(ctx: AppContext = Depends(get_context)):
    """Post and member totals. Engagement counters are not tracked and stay at zero."""
    try:
        return CommunityStats(
            total_posts=ctx.db.count_posts(),
            total_members=ctx.db.count_users(),
        )

    except Exception as e:
        logger.error(f"Error fetching community stats: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
