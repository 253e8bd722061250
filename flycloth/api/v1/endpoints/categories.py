from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, verify_admin_origin
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.schemas.product import Category as CategorySchema
from flycloth.schemas.product import CategoryCreate, CategoryUpdate
from flycloth.services.product_service import product_service

router = APIRouter()

admin_dependencies = [Depends(get_current_admin), Depends(verify_admin_origin)]


@router.get("/", response_model=List[CategorySchema], summary="获取分类列表")
async def list_categories(
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    获取全部分类（缓存10分钟）
    """
    return await product_service.list_categories(db, redis_pool)


@router.get("/{category_id}", response_model=CategorySchema, summary="获取特定分类详情")
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    category = await product_service.get_category(db, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="分类不存在")
    return category


@router.post("/", response_model=CategorySchema, status_code=status.HTTP_201_CREATED, summary="创建分类",
             dependencies=admin_dependencies)
async def create_category(
        category_in: CategoryCreate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    try:
        return await product_service.create_category(db, category_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{category_id}", response_model=CategorySchema, summary="重命名分类", dependencies=admin_dependencies)
async def update_category(
        category_id: int,
        category_in: CategoryUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    category = await product_service.get_category(db, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="分类不存在")
    try:
        return await product_service.update_category(db, category, category_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT, summary="删除分类",
               dependencies=admin_dependencies)
async def delete_category(
        category_id: int,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    删除分类，仍有商品引用时拒绝
    """
    category = await product_service.get_category(db, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="分类不存在")
    try:
        await product_service.delete_category(db, category, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
