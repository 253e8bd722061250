from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, verify_admin_origin
from flycloth.db.session import get_db
from flycloth.schemas.product_review import ProductReview
from flycloth.services.review_service import review_service

router = APIRouter(dependencies=[Depends(get_current_admin), Depends(verify_admin_origin)])


@router.get("/", response_model=List[ProductReview], summary="后台评价列表")
async def list_reviews(
        rating: Optional[int] = Query(None, ge=1, le=5, description="按评分筛选"),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        db: AsyncSession = Depends(get_db),
):
    return await review_service.admin_list_reviews(db, rating=rating, skip=skip, limit=limit)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT, summary="后台删除评价")
async def delete_review(review_id: int, db: AsyncSession = Depends(get_db)):
    try:
        await review_service.admin_delete_review(db, review_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
