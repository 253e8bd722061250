"""api路由配置"""

from fastapi import APIRouter

from flycloth.api.v1.endpoints import (admin_orders, admin_products, admin_reviews, admin_settings, auth, cart,
                                       categories, checkout, customers, inventory, notifications, orders, products,
                                       reviews, shipments, users)

api_router = APIRouter()

# 认证与用户
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])

# 商品目录
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(products.router, prefix="/products", tags=["products"])

# 购物车与结账
api_router.include_router(cart.router, prefix="/cart", tags=["cart"])
api_router.include_router(checkout.router, prefix="/stripe", tags=["stripe"])

# 订单、评价、通知
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])

# 后台管理
api_router.include_router(admin_products.router, prefix="/admin/products", tags=["admin"])
api_router.include_router(inventory.router, prefix="/admin/inventory", tags=["admin"])
api_router.include_router(admin_orders.router, prefix="/admin/orders", tags=["admin"])
api_router.include_router(admin_reviews.router, prefix="/admin/reviews", tags=["admin"])
api_router.include_router(admin_settings.router, prefix="/admin/settings", tags=["admin"])
api_router.include_router(shipments.router, prefix="/admin/shipments", tags=["admin"])
api_router.include_router(customers.router, prefix="/admin/customers", tags=["admin"])
