from __future__ import annotations

import json
import re

from pedidobot.bot.phrases import normalize
from pedidobot.services.pricing import cents_from_amount, split_package_price

_CATALOG_LINE = re.compile(
    r"^ID:(?P<id>\d+) \| (?P<name>[^|]+?) \| Sabores: (?P<flavors>[^|]*?) \| "
    r"Paquete de (?P<size>\d+) piezas \| \$(?P<price>[\d.]+)$"
)
_FLAVOR_ENTRY = re.compile(r"(?P<name>[^,:]+): (?P<id>\d+)")

_QUANTITY_WORDS = {
    "un": 1,
    "una": 1,
    "uno": 1,
    "dos": 2,
    "tres": 3,
    "cuatro": 4,
    "cinco": 5,
    "seis": 6,
    "siete": 7,
    "ocho": 8,
    "nueve": 9,
    "diez": 10,
}


def _extract_packages(text: str) -> int:
    for token in normalize(text).split():
        if token.isdigit():
            return max(int(token), 1)
        if token in _QUANTITY_WORDS:
            return _QUANTITY_WORDS[token]
    return 1


def _read_catalog(system_prompt: str) -> tuple[list[dict], dict[str, int]]:
    products = []
    flavor_ids: dict[str, int] = {}
    lines = system_prompt.splitlines()
    for index, line in enumerate(lines):
        match = _CATALOG_LINE.match(line.strip())
        if match:
            products.append(
                {
                    "id": int(match.group("id")),
                    "name": match.group("name").strip(),
                    "flavors": [f.strip() for f in match.group("flavors").split(",") if f.strip() and f.strip() != "N/A"],
                    "size": int(match.group("size")),
                    "price_cents": cents_from_amount(match.group("price")),
                }
            )
        if line.startswith("MAPEO DE SABORES") and index + 1 < len(lines):
            for entry in _FLAVOR_ENTRY.finditer(lines[index + 1]):
                flavor_ids[entry.group("name").strip()] = int(entry.group("id"))
    return products, flavor_ids


def _pick_product(text: str, products: list[dict]) -> dict | None:
    normalized_text = normalize(text)
    scored = []
    for product in products:
        name = normalize(product["name"])
        if name and name in normalized_text:
            scored.append((product, len(name)))
            continue
        # "jugosa" for "JUMEX JUGOSA"
        tail = name.split(" ", 1)[-1]
        if tail and tail != name and f" {tail} " in f" {normalized_text} ":
            scored.append((product, len(tail)))
    if not scored:
        return None
    scored.sort(key=lambda entry: entry[1], reverse=True)
    return scored[0][0]


class MockCompletionProvider:
    """Offline stand-in for the completion API.

    Understands "<n> paquete(s) de <producto> de <sabor>" against the catalog
    embedded in the system prompt and answers in the same prose + JSON shape
    the real model is asked for.
    """

    name = "mock"

    def complete(self, messages: list[dict[str, str]]) -> str:
        system_prompt = messages[0]["content"] if messages and messages[0]["role"] == "system" else ""
        user_message = messages[-1]["content"] if messages else ""
        products, flavor_ids = _read_catalog(system_prompt)

        product = _pick_product(user_message, products)
        if not product:
            return "¿Qué producto te gustaría pedir? Puedes pedirme el menú si quieres ver las opciones."

        normalized_text = normalize(user_message)
        flavors = [flavor for flavor in product["flavors"] if normalize(flavor) and normalize(flavor) in normalized_text]
        if not flavors:
            available = ", ".join(product["flavors"]) or "N/A"
            return (
                f"¡Claro! {product['name']} está disponible en los sabores: {available}.\n"
                "¿De qué sabor o sabores te gustaría tu paquete?"
            )
        if len(flavors) > 1 and "mitad" not in normalized_text:
            return (
                f"¡Perfecto! {product['name']} viene en paquete de {product['size']} piezas.\n"
                "¿Cómo quieres distribuir los sabores?"
            )

        packages = _extract_packages(user_message)
        pieces = product["size"] * packages
        share, extra = divmod(pieces, len(flavors))
        quantities = [share + (1 if index < extra else 0) for index in range(len(flavors))]
        prices = split_package_price(product["price_cents"], product["size"], quantities)

        items = []
        for flavor, quantity, price_cents in zip(flavors, quantities, prices):
            items.append(
                {
                    "product_id": product["id"],
                    "nombre_product": product["name"],
                    "sabor_id": flavor_ids.get(flavor),
                    "sabor_nombre": flavor,
                    "quantity": quantity,
                    "total_price": round(price_cents / 100, 2),
                    "total_price_cents": price_cents,
                }
            )
        detail = " + ".join(f"{quantity} {flavor.lower()}" for flavor, quantity in zip(flavors, quantities))
        total = sum(prices) / 100
        block = json.dumps({"items": items}, ensure_ascii=False, separators=(",", ":"))
        return f"¡Listo! Agregado: {product['name']}, {detail} - ${total:.2f}\n\n{block}"
