from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_user
from flycloth.db.session import get_db
from flycloth.models.user import User
from flycloth.schemas.product_review import ProductReview, ProductReviewCreate, ProductReviewUpdate
from flycloth.services.review_service import review_service

router = APIRouter()


@router.post("/", response_model=ProductReview, status_code=status.HTTP_201_CREATED, summary="发表商品评价")
async def create_review(
        review_in: ProductReviewCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """
    只能评价自己订单中的商品，同一订单同一商品只能评价一次
    """
    try:
        return await review_service.create_review(db, current_user, review_in)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{review_id}", response_model=ProductReview, summary="修改商品评价")
async def update_review(
        review_id: int,
        review_in: ProductReviewUpdate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    try:
        return await review_service.update_review(db, current_user, review_id, review_in)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT, summary="删除商品评价")
async def delete_review(
        review_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    try:
        await review_service.delete_review(db, current_user, review_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
