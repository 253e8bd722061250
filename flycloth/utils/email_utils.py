from email.message import EmailMessage

import aiosmtplib
from jinja2 import Template

from flycloth.core.config import settings

HTML_TEMPLATE = """
<h3>{% if current_stock == 0 %}Out of Stock Alert{% else %}Low Stock Alert{% endif %}</h3>
<ul>
  <li>Product: {{ product_name }}</li>
  <li>Variant: {{ variant_info }}</li>
  <li>Variant ID: {{ variant_id }}</li>
  <li>Current stock: {{ current_stock }}</li>
</ul>
<p>Please restock or adjust the listing.</p>
"""


def alert_recipients() -> list[str]:
    return [addr.strip() for addr in settings.ALERT_EMAIL_TO.split(",") if addr.strip()]


def render_low_stock_email(alert: dict) -> EmailMessage:
    """根据预警数据生成邮件"""
    state = "Out of stock" if alert.get("current_stock") == 0 else "Low stock"
    msg = EmailMessage()
    msg["From"] = settings.ALERT_EMAIL_FROM or settings.SMTP_USER
    msg["To"] = ", ".join(alert_recipients())
    msg["Subject"] = f"[FlyCloth] {state}: {alert.get('product_name')} ({alert.get('variant_info')})"
    msg.set_content("Please view this message in an HTML capable client.")
    msg.add_alternative(Template(HTML_TEMPLATE).render(**alert), subtype="html")
    return msg


async def send_low_stock_email(alert: dict) -> bool:
    """发送低库存预警邮件，未配置收件人时跳过"""
    if not alert_recipients():
        return False

    await aiosmtplib.send(
        render_low_stock_email(alert),
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER or None,
        password=settings.SMTP_PASS or None,
        use_tls=settings.SMTP_PORT == 465,
        start_tls=settings.SMTP_PORT == 587,
        timeout=10.0
    )
    return True
