from decimal import Decimal

ORDER_NUMBER_PREFIX = "CMD"
ORDER_NUMBER_WIDTH = 6


def pad_order_id(order_id) -> str:
    return str(order_id).zfill(ORDER_NUMBER_WIDTH)


def format_order_number(order_id) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{pad_order_id(order_id)}"


def _amount(value) -> str:
    return f"{Decimal(str(value)):,.2f}"


def build_confirmation_message(order, shop_name="BS SHOP", currency="€") -> str:
    """Render the WhatsApp confirmation text for a created order.

    ``order`` must have its items loaded with product and variant; nothing is
    queried or written here.
    """
    lines = [
        f"🛒 *NEW ORDER {shop_name.upper()}*",
        "",
        f"📋 *Order #{pad_order_id(order.id)}*",
        f"💰 *Total: {_amount(order.total_amount)} {currency}*",
        "",
        "📦 *ORDERED PRODUCTS:*",
    ]
    for item in order.items:
        variant = f" - {item.variant.name}" if item.variant is not None else ""
        lines.append(
            f"• {item.product.name}{variant} x{item.quantity} = {_amount(item.total_price)}{currency}"
        )
    lines.append("")
    lines.append(f"📝 *NOTES:* {order.notes or 'None'}")
    lines.append("")
    lines.append("✅ *Confirm this order by replying 'YES'*")
    return "\n".join(lines)


NEXT_STEPS = [
    "Check the order summary above",
    "Send the WhatsApp message to confirm",
    "Wait for the shop to accept your order",
]
