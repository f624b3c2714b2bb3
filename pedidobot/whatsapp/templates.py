from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class TemplateNotFoundError(KeyError):
    pass


@dataclass(frozen=True)
class MessageTemplate:
    name: str
    language: str
    parameters: tuple[str, ...]
    text: str

    def render(self, variables: dict[str, Any]) -> str:
        return self.text.format(**{key: variables.get(key, "") for key in self.parameters})

    def ordered_parameters(self, variables: dict[str, Any]) -> list[str]:
        return [str(variables.get(key, "")) for key in self.parameters]


TEMPLATES: dict[str, MessageTemplate] = {
    "recordatorio_pedido_hoy": MessageTemplate(
        name="recordatorio_pedido_hoy",
        language="es_MX",
        parameters=("userName",),
        text=(
            "*Hola {userName} 👋*, Te recordamos que *hoy* es tu fecha de pedido programada 🗓️. "
            "Por favor realiza tu pedido cuanto antes para asegurar la entrega a tiempo de tus productos. "
            "_Si ya realizaste tu pedido, ignora este mensaje_ ✅. ¡Gracias por tu preferencia! 😁"
        ),
    ),
    "pedido_confirmado": MessageTemplate(
        name="pedido_confirmado",
        language="es_MX",
        parameters=("userName", "orderNumber"),
        text=(
            "¡Hola {userName}! 🎉 Tu pedido #{orderNumber} ha sido confirmado. "
            "Pronto lo procesaremos. ¡Gracias por tu compra! 😊"
        ),
    ),
}

REMINDER_TEMPLATE = "recordatorio_pedido_hoy"


def get_template(name: str) -> MessageTemplate:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise TemplateNotFoundError(name) from None
