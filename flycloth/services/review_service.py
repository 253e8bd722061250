import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flycloth.models.order import Order, OrderItem
from flycloth.models.product import Product
from flycloth.models.product_review import ProductReview
from flycloth.models.user import User
from flycloth.schemas.product_review import ProductReview as ProductReviewSchema
from flycloth.schemas.product_review import ProductReviewCreate, ProductReviewUpdate
from flycloth.services.notification_service import notification_service

logger = logging.getLogger(__name__)

BAD_REVIEW_MAX_RATING = 2


class ReviewService:

    @staticmethod
    async def _get_review(db: AsyncSession, review_id: int) -> Optional[ProductReview]:
        result = await db.execute(
            select(ProductReview)
            .options(selectinload(ProductReview.user))
            .where(ProductReview.id == review_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _order_contains_product(db: AsyncSession, order_id: int, user_id: int, product_id: int) -> bool:
        """订单必须属于该用户，且包含该商品"""
        result = await db.execute(
            select(OrderItem.id)
            .join(Order, OrderItem.order_id == Order.id)
            .where(Order.id == order_id, Order.user_id == user_id, OrderItem.product_id == product_id)
            .limit(1)
        )
        return result.first() is not None

    async def create_review(self, db: AsyncSession, user: User, review_in: ProductReviewCreate) -> ProductReview:
        product = await db.get(Product, review_in.product_id)
        if not product:
            raise LookupError("商品不存在")

        if not await self._order_contains_product(db, review_in.order_id, user.id, review_in.product_id):
            raise ValueError("只能评价自己订单中购买过的商品")

        existing = await db.execute(
            select(ProductReview.id).where(
                ProductReview.user_id == user.id,
                ProductReview.product_id == review_in.product_id,
                ProductReview.order_id == review_in.order_id,
            )
        )
        if existing.first():
            raise ValueError("您已经评价过该订单中的此商品")

        review = ProductReview(user_id=user.id, **review_in.model_dump())
        db.add(review)
        await db.commit()
        logger.info(f"用户 {user.id} 评价了商品 {product.id}: {review.rating} 星")

        if review.rating <= BAD_REVIEW_MAX_RATING:
            await notification_service.notify_bad_review(db, product.id, product.name, review.rating, review.title)

        return await self._get_review(db, review.id)

    async def _get_owned_review(self, db: AsyncSession, user: User, review_id: int) -> ProductReview:
        review = await self._get_review(db, review_id)
        if not review:
            raise LookupError("评价不存在")
        if review.user_id != user.id:
            raise PermissionError("只能修改自己的评价")
        return review

    async def update_review(self, db: AsyncSession, user: User, review_id: int,
                            review_in: ProductReviewUpdate) -> ProductReview:
        review = await self._get_owned_review(db, user, review_id)
        for field, value in review_in.model_dump(exclude_unset=True).items():
            setattr(review, field, value)
        await db.commit()
        return await self._get_review(db, review.id)

    async def delete_review(self, db: AsyncSession, user: User, review_id: int) -> None:
        review = await self._get_owned_review(db, user, review_id)
        await db.delete(review)
        await db.commit()

    async def admin_delete_review(self, db: AsyncSession, review_id: int) -> None:
        review = await self._get_review(db, review_id)
        if not review:
            raise LookupError("评价不存在")
        await db.delete(review)
        await db.commit()

    # 查询

    async def list_product_reviews(self, db: AsyncSession, product_id: int, skip: int = 0,  # noqa
                                   limit: int = 20) -> List[ProductReview]:
        result = await db.execute(
            select(ProductReview)
            .options(selectinload(ProductReview.user))
            .where(ProductReview.product_id == product_id)
            .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_product_review_stats(self, db: AsyncSession, product_id: int) -> Dict:  # noqa
        result = await db.execute(
            select(ProductReview.rating, func.count(ProductReview.id))
            .where(ProductReview.product_id == product_id)
            .group_by(ProductReview.rating)
        )
        distribution = {rating: 0 for rating in range(1, 6)}
        for rating, count in result.all():
            distribution[rating] = count

        total = sum(distribution.values())
        average = round(sum(r * c for r, c in distribution.items()) / total, 1) if total else 0.0
        return {
            "product_id": product_id,
            "average_rating": average,
            "total_reviews": total,
            "rating_distribution": distribution,
        }

    async def get_purchase_eligibility(self, db: AsyncSession, user: User, product_id: int) -> Dict:  # noqa
        """当前用户购买过该商品的订单，以及每个订单下已有的评价"""
        orders_result = await db.execute(
            select(Order)
            .where(
                Order.user_id == user.id,
                Order.id.in_(select(OrderItem.order_id).where(OrderItem.product_id == product_id)),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        orders = list(orders_result.scalars().all())

        reviews_result = await db.execute(
            select(ProductReview)
            .options(selectinload(ProductReview.user))
            .where(ProductReview.user_id == user.id, ProductReview.product_id == product_id)
        )
        reviews_by_order = {review.order_id: review for review in reviews_result.scalars().all()}

        return {
            "product_id": product_id,
            "has_purchased": bool(orders),
            "orders": [
                {
                    "order_id": order.id,
                    "order_sn": order.order_sn,
                    "created_at": order.created_at,
                    "review": ProductReviewSchema.model_validate(reviews_by_order[order.id])
                    if order.id in reviews_by_order else None,
                }
                for order in orders
            ],
        }

    async def admin_list_reviews(self, db: AsyncSession, rating: Optional[int] = None, skip: int = 0,  # noqa
                                 limit: int = 50) -> List[ProductReview]:
        query = select(ProductReview).options(selectinload(ProductReview.user))
        if rating is not None:
            query = query.where(ProductReview.rating == rating)
        result = await db.execute(
            query.order_by(ProductReview.created_at.desc(), ProductReview.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())


review_service = ReviewService()
