# 在此处导入所有现有模型，以便 Alembic 可以检测到它们(作为模型注册中心)
# 用于自动生成迁移.
from flycloth.db.base_class import Base  # noqa

from flycloth.models.user import User  # noqa
from flycloth.models.product import Category, Product, ProductVariant, ProductImage  # noqa
from flycloth.models.order import CartItem, Order, OrderItem  # noqa
from flycloth.models.product_review import ProductReview  # noqa
from flycloth.models.notification import Notification  # noqa
from flycloth.models.store_settings import StoreSettings  # noqa
from flycloth.models.shipment import Shipment  # noqa
