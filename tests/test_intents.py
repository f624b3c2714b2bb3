import json

import pytest

from pedidobot.bot.intents import Intent, classify, is_simple_confirmation, match_command
from pedidobot.bot.phrases import PhraseTables, load_phrase_tables, normalize


@pytest.mark.parametrize(
    ("text", "command"),
    [
        ("🛍 Hacer pedido", "start_order"),
        ("✅ Confirmar", "confirm"),
        ("🛒 Ver carrito", "view_cart"),
        ("🗑️ Borrar pedido", "cancel"),
        ("🚪 Salir", "exit"),
        ("📋 Ver menú", "menu"),
        ("👨🏻‍💻 Soporte", "support"),
        ("🔄 Intentar de nuevo", "retry"),
        ("🛍️ Otro pedido", "add_more"),
        ("Buenos días!", "greeting"),
        ("AYUDA", "help"),
    ],
)
def test_buttons_and_keywords_map_to_commands(text, command):
    assert match_command(text) == command
    assert classify(text).command == command
    assert classify(text).intent is Intent.COMMAND


def test_normalize_drops_accents_emoji_and_punctuation():
    assert normalize("  ¡Sí, CONFIRMO!! ✅ ") == "si confirmo"
    assert normalize("Ver menú") == "ver menu"
    assert normalize(None) == ""


def test_idle_mode_only_recognises_commands():
    result = classify("quiero dos paquetes de bida 237 de uva")

    assert result.intent is Intent.IDLE
    assert result.command is None


def test_assistant_mode_routes_free_text_to_extractor():
    result = classify("quiero un paquete de jumex lb 460 de mango", assistant_mode=True)

    assert result.intent is Intent.FREE_FORM


def test_free_text_mentioning_the_cart_is_not_a_command():
    result = classify("agrega al carrito otro de uva", assistant_mode=True)

    assert result.intent is Intent.FREE_FORM


def test_button_label_inside_text_wins_in_assistant_mode():
    result = classify("ok ✅ Confirmar por favor", assistant_mode=True)

    assert result.intent is Intent.COMMAND
    assert result.command == "confirm"


def test_greeting_is_passed_to_the_assistant_while_active():
    assert classify("hola", assistant_mode=True).intent is Intent.FREE_FORM
    assert classify("hola").command == "greeting"


@pytest.mark.parametrize("text", ["Sería todo", "es todo gracias", "ya no quiero más", "listo"])
def test_order_complete_phrases(text):
    assert classify(text, assistant_mode=True).intent is Intent.ORDER_COMPLETE


def test_simple_confirmation_needs_cart_context_in_previous_reply():
    previous = "✅ Perfecto, tu pedido está listo.\n💰 Total: $210.00\n¿Quieres confirmar tu pedido?"

    assert is_simple_confirmation("sí", previous)
    assert classify("Ok", previous_bot_text=previous, assistant_mode=True).intent is Intent.SIMPLE_CONFIRMATION
    assert not is_simple_confirmation("sí", "¿Qué producto te gustaría pedir?")
    assert not is_simple_confirmation("sí quiero dos de mango", previous)


def test_phrase_tables_can_be_overridden_from_json(tmp_path):
    path = tmp_path / "phrases.json"
    path.write_text(
        json.dumps(
            {
                "commands": {"Échale": "confirm"},
                "order_complete": ["eso es todo"],
                "unknown_table": ["x"],
            }
        ),
        encoding="utf-8",
    )

    tables = load_phrase_tables(path)

    assert isinstance(tables, PhraseTables)
    assert tables.commands["echale"] == "confirm"
    assert tables.commands["hola"] == "greeting"
    assert tables.order_complete == ["eso es todo"]
    assert classify("échale!", tables=tables).command == "confirm"
    assert classify("listo", assistant_mode=True, tables=tables).intent is Intent.FREE_FORM
