"""
EasyParcel API 客户端

所有接口都是表单POST到 {api_url}{action}，嵌套参数按方括号展开，如 bulk[0][pick_code]
接口调用失败不会抛出异常，而是返回 success=False 的结果对象
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from flycloth.core.config import settings

logger = logging.getLogger(__name__)

TRACKING_URL_TEMPLATE = "https://easyparcel.com/my/en/track/details/?courier={courier}&awb={awb}"

# 马来西亚州属代码
STATE_CODES = {
    "johor": "jhr",
    "kedah": "kdh",
    "kelantan": "ktn",
    "melaka": "mlk",
    "negeri sembilan": "nsn",
    "pahang": "phg",
    "perak": "prk",
    "perlis": "pls",
    "pulau pinang": "png",
    "penang": "png",
    "sabah": "sbh",
    "sarawak": "swk",
    "selangor": "sgr",
    "terengganu": "trg",
    "kuala lumpur": "kul",
    "labuan": "lbn",
    "putrajaya": "pjy",
}


class EasyParcelError(Exception):
    """EasyParcel 接口调用异常"""
    pass


@dataclass
class ShippingAddress:
    name: str
    contact: str
    line1: str
    city: str
    state: str
    postcode: str
    line2: str = ""
    country: str = "MY"


@dataclass
class PickupAddress(ShippingAddress):
    company: str = ""


@dataclass
class CourierRate:
    service_id: str
    courier_name: str
    service_name: str
    price: float
    delivery: str = "N/A"


@dataclass
class RateResult:
    success: bool
    rates: List[CourierRate] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ShipmentResult:
    success: bool
    order_no: Optional[str] = None
    parcel_no: Optional[str] = None
    price: float = 0.0
    courier: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PaymentResult:
    success: bool
    order_no: Optional[str] = None
    awb: Optional[str] = None
    awb_label_url: Optional[str] = None
    tracking_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class OrderStatusResult:
    success: bool
    status: Optional[str] = None
    payable: bool = False
    error: Optional[str] = None


@dataclass
class ParcelStatusResult:
    success: bool
    parcel_no: Optional[str] = None
    ship_status: Optional[str] = None
    awb: Optional[str] = None
    awb_label_url: Optional[str] = None
    error: Optional[str] = None


def flatten_params(params: Dict[str, Any], prefix: str = "") -> List[tuple]:
    """
    把嵌套的字典/列表展开成 EasyParcel 需要的表单字段
    列表按下标展开，None 值跳过
    """
    pairs = []
    for key, value in params.items():
        new_key = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, list):
            for index, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(flatten_params(item, f"{new_key}[{index}]"))
                elif item is not None:
                    pairs.append((f"{new_key}[{index}]", str(item)))
        elif isinstance(value, dict):
            pairs.extend(flatten_params(value, new_key))
        elif value is not None:
            pairs.append((new_key, str(value)))
    return pairs


def normalize_state_code(state: str) -> str:
    lower = (state or "").lower().strip()
    return STATE_CODES.get(lower, lower[:3])


def get_tracking_url(courier: str, awb: str) -> str:
    return TRACKING_URL_TEMPLATE.format(courier=quote(courier, safe=""), awb=quote(awb, safe=""))


def _first_result(response: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    results = response.get("result") or []
    return results[0] if results else None


class EasyParcelClient:
    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.EASYPARCEL_API_KEY if api_key is None else api_key
        self.api_url = api_url or settings.EASYPARCEL_API_URL
        self.timeout = timeout or settings.EASYPARCEL_TIMEOUT
        self.transport = transport

    def is_enabled(self) -> bool:
        return bool(self.api_key)

    async def _call(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise EasyParcelError("EASYPARCEL_API_KEY 未配置")

        data = {"api": self.api_key, **dict(flatten_params(params))}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(f"{self.api_url}{action}", data=data)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise EasyParcelError(f"EasyParcel API error: {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise EasyParcelError(f"EasyParcel API error: {e}") from e
        return response.json()

    async def check_rates(self, pickup: PickupAddress, recipient: ShippingAddress, weight: float) -> RateResult:
        try:
            response = await self._call("EPRateCheckingBulk", {
                "bulk": [{
                    "pick_code": pickup.postcode,
                    "pick_state": normalize_state_code(pickup.state),
                    "pick_country": pickup.country or "MY",
                    "send_code": recipient.postcode,
                    "send_state": normalize_state_code(recipient.state),
                    "send_country": recipient.country or "MY",
                    "weight": weight,
                    "width": 0,
                    "length": 0,
                    "height": 0,
                    "date_coll": date.today().isoformat(),
                }],
            })
        except (EasyParcelError, ValueError) as e:
            logger.error(f"EasyParcel 运费查询失败: {e}")
            return RateResult(success=False, error=str(e))

        if response.get("api_status") != "Success":
            return RateResult(success=False, error=response.get("error_remark") or "Rate check failed")

        result = _first_result(response) or {}
        rates = [
            CourierRate(
                service_id=rate.get("service_id"),
                courier_name=rate.get("courier_name"),
                service_name=rate.get("service_name"),
                price=_to_float(rate.get("price")),
                delivery=rate.get("delivery") or "N/A",
            )
            for rate in result.get("rates") or []
        ]
        return RateResult(success=True, rates=rates)

    async def create_shipment(self, pickup: PickupAddress, recipient: ShippingAddress, weight: float,
                              content: str, value: float, reference: str, collect_date: date,
                              service_id: Optional[str] = None) -> ShipmentResult:
        """创建运单，默认使用 J&T Express"""
        try:
            response = await self._call("EPSubmitOrderBulk", {
                "bulk": [{
                    "weight": weight,
                    "width": 1,
                    "length": 1,
                    "height": 1,
                    "content": content,
                    "value": value,
                    "service_id": service_id or settings.EASYPARCEL_DEFAULT_SERVICE_ID,

                    "pick_name": pickup.name,
                    "pick_company": pickup.company or "",
                    "pick_contact": pickup.contact,
                    "pick_mobile": pickup.contact,
                    "pick_addr1": pickup.line1,
                    "pick_addr2": pickup.line2 or "",
                    "pick_city": pickup.city,
                    "pick_state": normalize_state_code(pickup.state),
                    "pick_code": pickup.postcode,
                    "pick_country": pickup.country or "MY",

                    "send_name": recipient.name,
                    "send_contact": recipient.contact,
                    "send_mobile": recipient.contact,
                    "send_addr1": recipient.line1,
                    "send_addr2": recipient.line2 or "",
                    "send_city": recipient.city,
                    "send_state": normalize_state_code(recipient.state),
                    "send_code": recipient.postcode,
                    "send_country": recipient.country or "MY",

                    "collect_date": collect_date.isoformat(),
                    "sms": 0,
                    "reference": reference,
                }],
            })
        except (EasyParcelError, ValueError) as e:
            logger.error(f"EasyParcel 创建运单失败: {e}")
            return ShipmentResult(success=False, error=str(e))

        if response.get("api_status") != "Success":
            return ShipmentResult(success=False, error=response.get("error_remark") or "Shipment creation failed")

        result = _first_result(response)
        if not result or result.get("status") != "Success":
            return ShipmentResult(success=False,
                                  error=(result or {}).get("remarks") or "Shipment creation failed")

        return ShipmentResult(
            success=True,
            order_no=result.get("order_number"),
            parcel_no=result.get("parcel_number"),
            price=_to_float(result.get("price")),
            courier=result.get("courier"),
        )

    async def pay_shipment(self, order_no: str) -> PaymentResult:
        """从 EasyParcel 账户余额支付运费"""
        try:
            response = await self._call("EPPayOrderBulk", {"bulk": [{"order_no": order_no}]})
        except (EasyParcelError, ValueError) as e:
            logger.error(f"EasyParcel 支付运单失败: {e}")
            return PaymentResult(success=False, error=str(e))

        if response.get("api_status") != "Success":
            return PaymentResult(success=False, error=response.get("error_remark") or "Payment failed")

        result = _first_result(response)
        if not result:
            return PaymentResult(success=False, error="Empty response from EasyParcel")
        if result.get("messagenow") == "Insufficient Credit":
            return PaymentResult(success=False, error="Insufficient EasyParcel credit balance")

        parcels = result.get("parcel") or [{}]
        parcel = parcels[0]
        return PaymentResult(
            success=True,
            order_no=result.get("orderno"),
            awb=parcel.get("awb"),
            awb_label_url=parcel.get("awb_id_link"),
            tracking_url=parcel.get("tracking_url"),
        )

    async def get_order_status(self, order_no: str) -> OrderStatusResult:
        try:
            response = await self._call("EPOrderStatusBulk", {"bulk": [{"order_no": order_no}]})
        except (EasyParcelError, ValueError) as e:
            logger.error(f"EasyParcel 订单状态查询失败: {e}")
            return OrderStatusResult(success=False, error=str(e))

        if response.get("api_status") != "Success":
            return OrderStatusResult(success=False, error=response.get("error_remark") or "Status check failed")

        result = _first_result(response) or {}
        return OrderStatusResult(
            success=True,
            status=result.get("order_status"),
            payable=result.get("order_payable") == "True",
        )

    async def get_parcel_status(self, order_no: str) -> ParcelStatusResult:
        """查询已支付运单的包裹状态"""
        try:
            response = await self._call("EPParcelStatusBulk", {"bulk": [{"order_no": order_no}]})
        except (EasyParcelError, ValueError) as e:
            logger.error(f"EasyParcel 包裹状态查询失败: {e}")
            return ParcelStatusResult(success=False, error=str(e))

        if response.get("api_status") != "Success":
            return ParcelStatusResult(success=False,
                                      error=response.get("error_remark") or "Parcel status check failed")

        result = _first_result(response) or {}
        parcel = (result.get("parcel") or [{}])[0]
        return ParcelStatusResult(
            success=True,
            parcel_no=parcel.get("parcel_number"),
            ship_status=parcel.get("ship_status"),
            awb=parcel.get("awb"),
            awb_label_url=parcel.get("awb_id_link"),
        )


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


easyparcel_client = EasyParcelClient()
