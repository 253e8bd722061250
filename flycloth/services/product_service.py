import logging
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flycloth.core.config import UPLOAD
from flycloth.models.product import Category, MediaTypeEnum, Product, ProductImage, ProductVariant
from flycloth.schemas import product as schemas
from flycloth.services.payment_service import stripe_service
from flycloth.utils.cache import CacheKeys, CacheTTL, get_or_set, invalidate_cache, invalidate_cache_pattern

logger = logging.getLogger(__name__)

FEATURED_LIMIT = 3


class ProductService:

    # 分类

    @staticmethod
    async def _fetch_categories(db: AsyncSession) -> List[dict]:
        result = await db.execute(select(Category).order_by(Category.name))
        return [schemas.Category.model_validate(c).model_dump() for c in result.scalars().all()]

    async def list_categories(self, db: AsyncSession, redis: Optional[Redis] = None) -> List[dict]:
        return await get_or_set(redis, CacheKeys.CATEGORIES, lambda: self._fetch_categories(db),
                                CacheTTL.CATEGORIES)

    @staticmethod
    async def get_category(db: AsyncSession, category_id: int) -> Optional[Category]:
        return await db.get(Category, category_id)

    @staticmethod
    async def _ensure_category_name_free(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> None:
        query = select(Category.id).where(func.lower(Category.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        if (await db.execute(query)).first():
            raise ValueError(f"分类 '{name}' 已存在")

    async def create_category(self, db: AsyncSession, category_in: schemas.CategoryCreate,
                              redis: Optional[Redis] = None) -> Category:
        await self._ensure_category_name_free(db, category_in.name)
        category = Category(name=category_in.name)
        db.add(category)
        await db.commit()
        await db.refresh(category)
        await invalidate_cache(redis, CacheKeys.CATEGORIES)
        return category

    async def update_category(self, db: AsyncSession, category: Category, category_in: schemas.CategoryUpdate,
                              redis: Optional[Redis] = None) -> Category:
        await self._ensure_category_name_free(db, category_in.name, exclude_id=category.id)
        category.name = category_in.name
        await db.commit()
        await invalidate_cache(redis, CacheKeys.CATEGORIES)
        return category

    async def delete_category(self, db: AsyncSession, category: Category, redis: Optional[Redis] = None) -> None:
        """仍有商品引用的分类不能删除"""
        in_use = await db.execute(select(func.count(Product.id)).where(Product.category_id == category.id))
        if in_use.scalar_one() > 0:
            raise ValueError("该分类下还有商品，无法删除")
        await db.delete(category)
        await db.commit()
        await invalidate_cache(redis, CacheKeys.CATEGORIES)

    # 商品查询

    @staticmethod
    def to_list_item(product: Product) -> dict:
        """商品列表项，需要预加载 images 和 variants"""
        data = schemas.Product.model_validate(product).model_dump()
        primary = product.primary_image
        video = next((m for m in product.images if m.media_type == MediaTypeEnum.VIDEO), None)
        active_variants = [v for v in product.variants if v.is_active]
        data.update(
            image_url=primary.storage_path if primary else None,
            video_url=video.storage_path if video else None,
            in_stock=any(v.stock_quantity > 0 for v in active_variants),
            fits=sorted({v.fit for v in active_variants}, key=lambda f: f.value),
        )
        return data

    async def _query_products(self, db: AsyncSession, filters: schemas.ProductFilters, skip: int = 0,
                              limit: int = 50) -> List[dict]:
        query = (
            select(Product)
            .options(selectinload(Product.images), selectinload(Product.variants))
            .where(Product.is_active.is_(True))
        )
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        if filters.min_price is not None:
            query = query.where(Product.base_price >= filters.min_price)
        if filters.max_price is not None:
            query = query.where(Product.base_price <= filters.max_price)
        if filters.fits:
            query = query.where(Product.variants.any(ProductVariant.fit.in_(filters.fits)))
        if filters.gsm:
            query = query.where(Product.variants.any(ProductVariant.gsm.in_(filters.gsm)))
        if filters.category_id is not None:
            query = query.where(Product.category_id == filters.category_id)
        if filters.featured is not None:
            query = query.where(Product.featured.is_(filters.featured))

        query = query.order_by(Product.created_at.desc(), Product.id.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return [self.to_list_item(p) for p in result.scalars().all()]

    async def list_products(self, db: AsyncSession, filters: schemas.ProductFilters, skip: int = 0,
                            limit: int = 50, redis: Optional[Redis] = None) -> List[dict]:
        """公开商品列表，只有无筛选的首页才走缓存"""
        if filters == schemas.ProductFilters() and skip == 0:
            key = f"{CacheKeys.PRODUCTS_LIST}:{limit}"
            return await get_or_set(redis, key, lambda: self._query_products(db, filters, skip, limit),
                                    CacheTTL.PRODUCTS_LIST)
        return await self._query_products(db, filters, skip, limit)

    async def list_featured_products(self, db: AsyncSession, redis: Optional[Redis] = None) -> List[dict]:
        filters = schemas.ProductFilters(featured=True)
        return await get_or_set(redis, CacheKeys.FEATURED_PRODUCTS,
                                lambda: self._query_products(db, filters, limit=FEATURED_LIMIT),
                                CacheTTL.PRODUCTS_LIST)

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(
            select(Product)
            .options(
                selectinload(Product.images),
                selectinload(Product.variants),
                selectinload(Product.category),
            )
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_product_detail(self, db: AsyncSession, product_id: int,
                                 include_inactive: bool = False) -> Optional[dict]:
        """商品详情，只包含上架的规格"""
        product = await self.get_product(db, product_id)
        if not product or (not product.is_active and not include_inactive):
            return None

        data = schemas.Product.model_validate(product).model_dump()
        data["images"] = [schemas.ProductImage.model_validate(i).model_dump() for i in product.images]
        data["variants"] = [
            schemas.ProductVariant.model_validate(v).model_dump()
            for v in sorted(product.variants, key=lambda v: v.id)
            if v.is_active or include_inactive
        ]
        data["category"] = schemas.Category.model_validate(product.category).model_dump() \
            if product.category else None
        return data

    @staticmethod
    async def get_variant(db: AsyncSession, variant_id: int) -> Optional[ProductVariant]:
        result = await db.execute(
            select(ProductVariant)
            .options(selectinload(ProductVariant.product).selectinload(Product.images))
            .where(ProductVariant.id == variant_id)
        )
        return result.scalar_one_or_none()

    # 商品管理

    @staticmethod
    async def invalidate_product_caches(redis: Optional[Redis]) -> None:
        await invalidate_cache_pattern(redis, f"{CacheKeys.PRODUCTS_LIST}*")
        await invalidate_cache(redis, CacheKeys.FEATURED_PRODUCTS)

    @staticmethod
    async def _ensure_sku_free(db: AsyncSession, sku: str, exclude_id: Optional[int] = None) -> None:
        query = select(Product.id).where(Product.sku == sku)
        if exclude_id is not None:
            query = query.where(Product.id != exclude_id)
        if (await db.execute(query)).first():
            raise ValueError(f"商品编码 {sku} 已存在")

    @staticmethod
    async def _ensure_category_exists(db: AsyncSession, category_id: Optional[int]) -> None:
        if category_id is not None and await db.get(Category, category_id) is None:
            raise ValueError(f"分类 {category_id} 不存在")

    async def create_product(self, db: AsyncSession, product_in: schemas.ProductCreate,
                             redis: Optional[Redis] = None) -> Product:
        await self._ensure_sku_free(db, product_in.sku)
        await self._ensure_category_exists(db, product_in.category_id)

        seen = set()
        for variant_in in product_in.variants:
            key = (variant_in.size, variant_in.fit)
            if key in seen:
                raise ValueError(f"规格 {variant_in.size} / {variant_in.fit.value} 重复")
            seen.add(key)

        product = Product(
            **product_in.model_dump(exclude={"variants", "description"}),
            description=product_in.description or "",
            variants=[
                ProductVariant(
                    **variant_in.model_dump(exclude={"price"}),
                    price=variant_in.price if variant_in.price is not None else product_in.base_price,
                )
                for variant_in in product_in.variants
            ],
        )
        db.add(product)
        await db.commit()
        logger.info(f"商品已创建: {product.sku}")
        await self.invalidate_product_caches(redis)
        return await self.get_product(db, product.id)

    async def update_product(self, db: AsyncSession, product: Product, product_in: schemas.ProductUpdate,
                             redis: Optional[Redis] = None) -> Product:
        update_data = product_in.model_dump(exclude_unset=True)
        if "sku" in update_data:
            await self._ensure_sku_free(db, update_data["sku"], exclude_id=product.id)
        if "category_id" in update_data:
            await self._ensure_category_exists(db, update_data["category_id"])

        for field, value in update_data.items():
            setattr(product, field, value)
        await db.commit()

        if update_data.get("base_price") is not None:
            await self._sync_variant_prices(db, product.id, update_data["base_price"])

        await self.invalidate_product_caches(redis)
        return await self.get_product(db, product.id)

    @staticmethod
    async def _sync_variant_prices(db: AsyncSession, product_id: int, price) -> None:
        """基础价格变化后同步到所有规格，失败不影响商品更新"""
        try:
            await db.execute(
                update(ProductVariant)
                .where(ProductVariant.product_id == product_id)
                .values(price=price)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"同步商品 {product_id} 的规格价格失败: {e}")

    async def delete_product(self, db: AsyncSession, product: Product, redis: Optional[Redis] = None) -> None:
        await db.delete(product)
        await db.commit()
        logger.info(f"商品已删除: {product.sku}")
        await self.invalidate_product_caches(redis)

    # 规格管理

    @staticmethod
    async def _ensure_variant_unique(db: AsyncSession, product_id: int, size: str, fit,
                                     exclude_id: Optional[int] = None) -> None:
        query = select(ProductVariant.id).where(
            ProductVariant.product_id == product_id,
            ProductVariant.size == size,
            ProductVariant.fit == fit,
        )
        if exclude_id is not None:
            query = query.where(ProductVariant.id != exclude_id)
        if (await db.execute(query)).first():
            raise ValueError(f"规格 {size} / {fit.value} 已存在")

    async def add_variant(self, db: AsyncSession, product: Product, variant_in: schemas.ProductVariantCreate,
                          redis: Optional[Redis] = None) -> ProductVariant:
        await self._ensure_variant_unique(db, product.id, variant_in.size, variant_in.fit)
        variant = ProductVariant(
            **variant_in.model_dump(exclude={"price"}),
            product_id=product.id,
            price=variant_in.price if variant_in.price is not None else product.base_price,
        )
        db.add(variant)
        await db.commit()
        await db.refresh(variant)
        await self.invalidate_product_caches(redis)
        return variant

    async def update_variant(self, db: AsyncSession, variant: ProductVariant,
                             variant_in: schemas.ProductVariantUpdate, redis: Optional[Redis] = None) -> ProductVariant:
        update_data = variant_in.model_dump(exclude_unset=True)
        if "size" in update_data or "fit" in update_data:
            await self._ensure_variant_unique(
                db, variant.product_id,
                update_data.get("size", variant.size),
                update_data.get("fit", variant.fit),
                exclude_id=variant.id,
            )
        for field, value in update_data.items():
            setattr(variant, field, value)
        await db.commit()
        await self.invalidate_product_caches(redis)
        return variant

    async def delete_variant(self, db: AsyncSession, variant: ProductVariant, redis: Optional[Redis] = None) -> None:
        await db.delete(variant)
        await db.commit()
        await self.invalidate_product_caches(redis)

    # 媒体管理

    @staticmethod
    async def _get_media(db: AsyncSession, product_id: int) -> List[ProductImage]:
        result = await db.execute(
            select(ProductImage)
            .where(ProductImage.product_id == product_id)
            .order_by(ProductImage.sort_order, ProductImage.id)
        )
        return list(result.scalars().all())

    async def add_media(self, db: AsyncSession, product: Product, media_in: schemas.ProductImageCreate,
                        redis: Optional[Redis] = None) -> ProductImage:
        """
        添加商品媒体
        第一个媒体自动成为主图，设为主图时清除其他主图标记
        """
        media = await self._get_media(db, product.id)
        if len(media) >= UPLOAD["max_files_per_product"]:
            raise ValueError(f"每个商品最多上传 {UPLOAD['max_files_per_product']} 个文件")

        is_primary = media_in.is_primary or not media
        if is_primary:
            for existing in media:
                existing.is_primary = False

        sort_order = media_in.sort_order
        if sort_order is None:
            sort_order = max((m.sort_order for m in media), default=-1) + 1

        image = ProductImage(
            product_id=product.id,
            storage_path=media_in.storage_path,
            media_type=media_in.media_type,
            is_primary=is_primary,
            sort_order=sort_order,
        )
        db.add(image)
        await db.commit()
        await db.refresh(image)
        await self.invalidate_product_caches(redis)
        return image

    async def set_primary_media(self, db: AsyncSession, product: Product, image_id: int,
                                redis: Optional[Redis] = None) -> ProductImage:
        media = await self._get_media(db, product.id)
        target = next((m for m in media if m.id == image_id), None)
        if target is None:
            raise LookupError("媒体文件不存在")

        for m in media:
            m.is_primary = m.id == image_id
        await db.commit()
        await self.invalidate_product_caches(redis)
        return target

    async def delete_media(self, db: AsyncSession, product: Product, image_id: int,
                           redis: Optional[Redis] = None) -> None:
        """删除媒体，删除的是主图时按排序把下一个提升为主图"""
        media = await self._get_media(db, product.id)
        target = next((m for m in media if m.id == image_id), None)
        if target is None:
            raise LookupError("媒体文件不存在")

        await db.delete(target)
        remaining = [m for m in media if m.id != image_id]
        if target.is_primary and remaining:
            remaining[0].is_primary = True
        await db.commit()
        await self.invalidate_product_caches(redis)

    # Stripe 同步

    async def sync_to_stripe(self, db: AsyncSession, product: Product) -> Dict[str, Any]:
        if product.stripe_price_id:
            raise ValueError("商品已同步到Stripe")

        stripe_ids = stripe_service.create_product(
            name=product.name,
            sku=product.sku,
            price=product.base_price,
            description=product.description,
        )
        product.stripe_product_id = stripe_ids["stripe_product_id"]
        product.stripe_price_id = stripe_ids["stripe_price_id"]
        await db.commit()
        return stripe_ids


product_service = ProductService()
