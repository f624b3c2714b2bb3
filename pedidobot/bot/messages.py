"""User-facing texts and button sets of the WhatsApp conversation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pedidobot.core.config import SUPPORT_EMAIL, SUPPORT_HOURS, SUPPORT_PHONE
from pedidobot.services.cart_store import CartLine
from pedidobot.services.catalog import CatalogProduct, group_by_brand
from pedidobot.services.pricing import format_money

BTN_START_ORDER = "🛍 Hacer pedido"
BTN_MENU = "📋 Ver menú"
BTN_HELP = "❓ Ayuda"
BTN_EXIT = "🚪 Salir"
BTN_HOME = "🏠 Inicio"
BTN_CONFIRM = "✅ Confirmar"
BTN_VIEW_CART = "🛒 Ver carrito"
BTN_ADD = "➕ Agregar"
BTN_CANCEL = "🗑️ Borrar pedido"
BTN_ANOTHER_ORDER = "🛍️ Otro pedido"
BTN_NEW_ORDER = "🛍️ Nuevo pedido"
BTN_SUPPORT = "👨🏻‍💻 Soporte"
BTN_RETRY = "🔄 Intentar de nuevo"

MAIN_BUTTONS = [BTN_START_ORDER, BTN_MENU, BTN_HELP]
CART_ACTIONS = [BTN_CONFIRM, BTN_VIEW_CART, BTN_ADD]
RETRY_BUTTONS = [BTN_RETRY, BTN_EXIT]

BRAND_HEADERS = {
    "JUMEX": "*🧊 JUGOS JUMEX*",
    "BIDA": "*🥤 JUGOS BIDA*",
}


@dataclass(frozen=True)
class OutboundMessage:
    text: str
    buttons: tuple[str, ...] = ()

    @classmethod
    def with_buttons(cls, text: str, buttons: list[str]) -> "OutboundMessage":
        return cls(text=text, buttons=tuple(buttons))


def _line_label(line: CartLine) -> str:
    if line.flavor_name:
        return f"{line.product_name} ({line.flavor_name})"
    return line.product_name


def welcome(name: str | None = None) -> list[OutboundMessage]:
    greeting = f"¡Hola {name}! 👋 Bienvenido." if name else "¡Hola! Bienvenido a nuestro servicio de pedidos."
    return [
        OutboundMessage(greeting),
        OutboundMessage.with_buttons("¿Qué te gustaría hacer?", MAIN_BUTTONS),
    ]


def start_order() -> list[OutboundMessage]:
    return [OutboundMessage.with_buttons("¡Hola! ¿En qué puedo ayudarte?", [BTN_EXIT])]


def exit_assistant() -> list[OutboundMessage]:
    return [OutboundMessage.with_buttons("👋 Has salido del asistente.\n\n¿Qué te gustaría hacer?", MAIN_BUTTONS)]


def home() -> list[OutboundMessage]:
    return [OutboundMessage.with_buttons("🏠 ¿Qué te gustaría hacer?", MAIN_BUTTONS)]


def menu(products: list[CatalogProduct]) -> list[OutboundMessage]:
    if not products:
        return [
            OutboundMessage("No hay productos disponibles por el momento."),
            OutboundMessage.with_buttons("Usa el botón para hablar con nuestro asistente.", [BTN_START_ORDER]),
        ]

    text = "🍹 *NUESTRO MENÚ* 🍹\n\n"
    for brand, brand_products in group_by_brand(products).items():
        text += f"{BRAND_HEADERS.get(brand, f'*{brand}*')}\n\n"
        for product in brand_products:
            text += f"• {product.name}\n"
            if product.flavors:
                text += f"Sabores: {', '.join(product.flavor_names)}\n"
            text += f"Paquete de {product.package_size}: {format_money(product.price_cents)}\n\n"
    return [
        OutboundMessage(text.rstrip()),
        OutboundMessage.with_buttons("¿Qué te gustaría hacer?", [BTN_HOME, BTN_START_ORDER, BTN_HELP]),
    ]


def help_text() -> list[OutboundMessage]:
    text = (
        "🤔 ¿Necesitas ayuda?:\n\n"
        "• Toca *Hacer pedido* para hablar con nuestro asistente.\n"
        "• Escribe lo que quieres en tus palabras, por ejemplo:\n"
        "  _'Quiero un paquete de jumex lb 460, 3 de manzana y 3 de mango'_\n"
        "• Cuando termines escribe *es todo* y confirma tu pedido.\n"
        "• Usa *Ver carrito* para revisar tu pedido en cualquier momento."
    )
    return [
        OutboundMessage(text),
        OutboundMessage.with_buttons("🏠 ¿Qué te gustaría hacer?", [BTN_HOME, BTN_START_ORDER, BTN_SUPPORT]),
    ]


def no_pending_order() -> list[OutboundMessage]:
    return [
        OutboundMessage.with_buttons(
            "No tienes ningún pedido pendiente.\n\nUsa el botón para hacer un nuevo pedido.",
            [BTN_START_ORDER, BTN_HOME],
        )
    ]


def empty_cart_confirmation() -> list[OutboundMessage]:
    return [
        OutboundMessage.with_buttons(
            "Tu carrito está vacío.\n\nUsa el botón para hacer tu pedido.",
            [BTN_START_ORDER, BTN_HOME],
        )
    ]


def order_confirmed(lines: list[CartLine], total_cents: int, phone: str, when: datetime) -> list[OutboundMessage]:
    summary = "🎉 *¡PEDIDO CONFIRMADO!* 🎉\n\n📋 *Resumen:*\n"
    for line in lines:
        summary += f"• {_line_label(line)} x{line.quantity} - {format_money(line.price_cents)}\n"
    summary += f"\n💰 *Total: {format_money(total_cents)}*"
    info = (
        "*Información del pedido:*\n"
        f"📱 WhatsApp: {phone}\n"
        f"🕐 Hora: {when.strftime('%d/%m/%Y %H:%M')}\n\n"
        "Tu pedido será procesado pronto.\n"
        "¡Gracias por tu compra! 😃"
    )
    return [
        OutboundMessage(summary),
        OutboundMessage.with_buttons(info, [BTN_ANOTHER_ORDER, BTN_SUPPORT]),
    ]


def confirmation_failed() -> list[OutboundMessage]:
    return [
        OutboundMessage.with_buttons(
            "Hubo un error procesando tu confirmación.\nPor favor intenta de nuevo o contacta soporte.",
            [BTN_RETRY, BTN_SUPPORT],
        )
    ]


def cart_summary(lines: list[CartLine], total_cents: int) -> list[OutboundMessage]:
    """Cart grouped by product; mixed flavors are listed inside one bullet."""
    if not lines:
        return [
            OutboundMessage.with_buttons(
                "🛒 Tu carrito está vacío.\n\nUsa el botón para hacer tu pedido.",
                [BTN_START_ORDER, BTN_HOME],
            )
        ]

    grouped: dict[int, list[CartLine]] = {}
    for line in lines:
        grouped.setdefault(line.product_id, []).append(line)

    text = "🛒 *TU CARRITO ACTUAL* 🛒\n\n📋 *Items:*\n"
    for product_lines in grouped.values():
        name = product_lines[0].product_name
        quantity = sum(line.quantity for line in product_lines)
        subtotal = sum(line.price_cents for line in product_lines)
        flavored = [line for line in product_lines if line.flavor_name]
        if len(flavored) > 1:
            detail = ", ".join(f"{line.quantity} {line.flavor_name}" for line in flavored)
            text += f"• {name} x{quantity} ({detail}) - {format_money(subtotal)}\n"
        else:
            text += f"• {_line_label(product_lines[0])} x{quantity} - {format_money(subtotal)}\n"
    text += f"\n💰 *Total: {format_money(total_cents)}*\n\n¿Qué quieres hacer?"
    return [OutboundMessage.with_buttons(text, [BTN_CONFIRM, BTN_ADD, BTN_CANCEL])]


def nothing_to_cancel() -> list[OutboundMessage]:
    return [OutboundMessage.with_buttons("No tienes ningún pedido activo para cancelar.", [BTN_START_ORDER, BTN_HOME])]


def order_cancelled() -> list[OutboundMessage]:
    return [
        OutboundMessage.with_buttons(
            "🗑️ *Pedido cancelado correctamente*\n\nTu carrito ha sido vaciado.",
            [BTN_NEW_ORDER, BTN_HOME],
        )
    ]


def add_more() -> list[OutboundMessage]:
    return [
        OutboundMessage.with_buttons(
            "🛍️ Te conecta con nuestro asistente para que puedas agregar productos.",
            [BTN_EXIT],
        )
    ]


def support() -> list[OutboundMessage]:
    text = (
        "📞 *Contactar Soporte*\n\n"
        "Si tienes algún problema con tu pedido o necesitas mayor ayuda:\n\n"
        f"📱 WhatsApp: {SUPPORT_PHONE}\n"
        f"📧 Email: {SUPPORT_EMAIL}\n"
        f"🕐 Horario: {SUPPORT_HOURS}\n\n"
        "¡Estamos aquí para ayudarte!"
    )
    return [OutboundMessage.with_buttons(text, [BTN_HOME])]


def retry(assistant_mode: bool) -> list[OutboundMessage]:
    if assistant_mode:
        return [
            OutboundMessage.with_buttons(
                "Perfecto, vamos de nuevo. ¿Qué te gustaría pedir?",
                [BTN_VIEW_CART, BTN_EXIT],
            )
        ]
    return [
        OutboundMessage.with_buttons(
            "🔄 Empecemos de nuevo. ¿Qué te gustaría hacer?",
            [BTN_START_ORDER, BTN_MENU, BTN_VIEW_CART],
        )
    ]


def order_ready(lines: list[CartLine], total_cents: int) -> list[OutboundMessage]:
    if not lines:
        return [OutboundMessage("No tienes productos en tu carrito aún. ¿Qué te gustaría pedir?")]
    text = "✅ *Perfecto, tu pedido está listo:*\n\n"
    for line in lines:
        text += f"• {_line_label(line)} x{line.quantity} - {format_money(line.price_cents)}\n"
    text += f"\n💰 *Total: {format_money(total_cents)}*\n\n¿Quieres confirmar tu pedido?"
    return [OutboundMessage.with_buttons(text, CART_ACTIONS)]


def simple_confirmation(has_cart: bool) -> list[OutboundMessage]:
    if not has_cart:
        return [OutboundMessage("No tienes productos en tu carrito. ¿Qué te gustaría pedir?")]
    return [
        OutboundMessage.with_buttons(
            "¡Excelente! ¿Quieres proceder con la confirmación de tu pedido?",
            CART_ACTIONS,
        )
    ]


def next_step() -> OutboundMessage:
    return OutboundMessage.with_buttons("¿Qué te gustaría hacer ahora?", CART_ACTIONS)


def followup_prompt() -> OutboundMessage:
    return OutboundMessage.with_buttons("¿Qué prefieres hacer?", CART_ACTIONS)


def cart_save_failed() -> list[OutboundMessage]:
    return [OutboundMessage.with_buttons("⚠️ Hubo un problema guardando tu pedido. Intenta de nuevo.", RETRY_BUTTONS)]


def not_understood() -> list[OutboundMessage]:
    return [OutboundMessage("❓ No entendí tu mensaje, ¿puedes repetir?")]


def turn_failed() -> list[OutboundMessage]:
    return [OutboundMessage.with_buttons("❌ Hubo un error procesando tu mensaje.", RETRY_BUTTONS)]

