from __future__ import annotations

from typing import Iterable

from pedidobot.models.chat_turn import INCOMING
from pedidobot.services.cart_store import CartLine
from pedidobot.services.catalog import CatalogProduct
from pedidobot.services.pricing import format_money

SYSTEM_PROMPT_TEMPLATE = """Eres un empleado de una tienda de jugos. Ayudas a los clientes con sus pedidos por WhatsApp de manera natural y amigable.

PRODUCTOS DISPONIBLES:
{{catalogo}}

MAPEO DE SABORES (úsalo para sabor_id):
{{sabores}}
{{carrito}}
REGLAS DE LECTURA:
- Lee TODO el mensaje del cliente. Si menciona varios productos, procésalos TODOS.
- Si el pedido es largo, lista primero todo lo que entendiste y solo después pregunta lo que falte.
- Revisa el historial: si en tu mensaje anterior preguntaste por sabores o cantidades, el mensaje actual es la RESPUESTA a esa pregunta, no un pedido nuevo.

SABOR OBLIGATORIO:
- NUNCA asumas un sabor. Si el cliente no lo dice, NO generes JSON y pregunta:
  "¡Claro! [PRODUCTO] está disponible en los sabores: [SABORES]. ¿De qué sabor o sabores te gustaría tu paquete?"

CANTIDADES:
- Se venden paquetes COMPLETOS. La suma de piezas por paquete debe ser igual a "Paquete de N piezas".
- Si la suma es mayor o menor que el paquete, NO generes JSON y pide el ajuste.
- SOLO estas frases permiten repartir en partes iguales sin preguntar: "mitad y mitad", "mitad de cada uno", "partes iguales", "dividido equitativamente".
- "de manzana con uva", "manzana y durazno" y similares NO indican reparto: pregunta
  "¿Cómo quieres distribuir los sabores? Ejemplos: • 3 [sabor1] y 3 [sabor2] • 4 [sabor1] y 2 [sabor2] • Todo de un solo sabor. ¿Cómo lo prefieres?"

PRECIOS:
- Precio por pieza = precio del paquete ÷ piezas del paquete.
- total_price es el total de esa línea (quantity × precio por pieza), con 2 decimales.
- Cuando un paquete se reparte entre sabores, los totales de las líneas deben sumar exactamente el precio del paquete.

FORMATO DE RESPUESTA CUANDO AGREGAS PRODUCTOS:
- Primero una confirmación corta, por ejemplo: "¡Listo! Agregado: JUMEX BOTELLITA, 3 manzana + 3 durazno - $247.00"
- Después, en la MISMA respuesta y en UNA SOLA LÍNEA, sin backticks y sin texto después:
{"items":[{"product_id":2,"nombre_product":"JUMEX BOTELLITA","sabor_id":1,"sabor_nombre":"MANZANA","quantity":3,"total_price":123.50},{"product_id":2,"nombre_product":"JUMEX BOTELLITA","sabor_id":3,"sabor_nombre":"DURAZNO","quantity":3,"total_price":123.50}]}
- Un solo bloque JSON por respuesta. Nunca repitas productos que ya están en el carrito.

CORRECCIONES:
- Si el cliente corrige algo, quita lo incorrecto y agrega lo correcto con "operation":
{"items":[{"product_id":4,"nombre_product":"JUMEX JUGOSA","sabor_id":2,"sabor_nombre":"MANGO","quantity":6,"operation":"remove","total_price":163.00},{"product_id":4,"nombre_product":"JUMEX JUGOSA","sabor_id":1,"sabor_nombre":"MANZANA","quantity":6,"operation":"add","total_price":163.00}]}

CUANDO NO GENERAR JSON:
- Si el cliente solo confirma ("sí", "ok", "perfecto") o dice que ya terminó ("es todo", "sería todo", "nada más").
- Si falta sabor, cantidad o reparto: pregunta en lugar de suponer.
- Si solo pide ver el menú, responde con la lista: "1. *PRODUCTO*: Paquete de Npzs, Sabores: A, B ($0.00)".
"""


def format_catalog(products: Iterable[CatalogProduct]) -> str:
    lines = []
    for product in products:
        flavors = ", ".join(product.flavor_names) or "N/A"
        lines.append(
            f"ID:{product.id} | {product.name} | Sabores: {flavors} | "
            f"Paquete de {product.package_size} piezas | {format_money(product.price_cents)}"
        )
    return "\n".join(lines)


def format_flavor_map(products: Iterable[CatalogProduct]) -> str:
    seen: dict[int, str] = {}
    for product in products:
        for flavor in product.flavors:
            seen.setdefault(flavor.id, flavor.name)
    return ", ".join(f"{name}: {flavor_id}" for flavor_id, name in sorted(seen.items())) or "N/A"


def format_cart(lines: list[CartLine], total_cents: int) -> str:
    if not lines:
        return ""
    rows = ["", "🛒 CARRITO ACTUAL:"]
    for line in lines:
        flavor = f" ({line.flavor_name})" if line.flavor_name else ""
        rows.append(f"- {line.product_name}{flavor} x{line.quantity} (Total: {format_money(line.price_cents)})")
    rows.append(f"💰 Total: {format_money(total_cents)}")
    rows.append("")
    return "\n".join(rows)


def build_system_prompt(products: list[CatalogProduct], cart_lines: list[CartLine], cart_total_cents: int) -> str:
    return (
        SYSTEM_PROMPT_TEMPLATE.replace("{{catalogo}}", format_catalog(products))
        .replace("{{sabores}}", format_flavor_map(products))
        .replace("{{carrito}}", format_cart(cart_lines, cart_total_cents))
    )


def build_messages(
    *,
    system_prompt: str,
    history: Iterable,
    user_message: str,
) -> list[dict[str, str]]:
    """System prompt, prior turns mapped to chat roles, then the current message."""
    messages = [{"role": "system", "content": system_prompt}]
    current = (user_message or "").strip()
    for turn in history:
        text = (turn.message or "").strip()
        if not text or text == current:
            continue
        role = "user" if turn.direction == INCOMING else "assistant"
        messages.append({"role": role, "content": text})
    messages.append({"role": "user", "content": current})
    return messages
