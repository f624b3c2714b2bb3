import pytest

from pedidobot.ai.parser import parse_order_response, split_response_text
from pedidobot.ai.schema import ParseStatus


def test_single_block_yields_items_with_cent_subtotals():
    text = (
        "¡Listo! Agregado: JUMEX LB 460, 3 manzana + 3 mango - $210.00\n\n"
        '{"items":[{"product_id":1,"nombre_product":"JUMEX LB 460","sabor_id":1,"sabor_nombre":"MANZANA",'
        '"quantity":3,"total_price":105.0},'
        '{"product_id":1,"nombre_product":"JUMEX LB 460","sabor_id":2,"sabor_nombre":"MANGO",'
        '"quantity":3,"total_price_cents":10500}]}'
    )

    result = parse_order_response(text)

    assert result.status is ParseStatus.OK
    assert [(item.flavor_id, item.quantity, item.subtotal_cents) for item in result.items] == [
        (1, 3, 10500),
        (2, 3, 10500),
    ]
    assert all(item.operation == "add" for item in result.items)
    assert result.items[0].product_name == "JUMEX LB 460"


def test_two_blocks_are_concatenated_in_encounter_order():
    text = (
        "Agregué las latas.\n"
        '{"items":[{"product_id":2,"sabor_id":4,"quantity":12,"total_price_cents":18000}]}\n'
        "Y también el jugo chico.\n"
        '{"items":[{"product_id":3,"sabor_id":1,"quantity":10,"total_price_cents":23800}]}'
    )

    result = parse_order_response(text)

    assert result.status is ParseStatus.OK
    assert [item.product_id for item in result.items] == [2, 3]


@pytest.mark.parametrize(
    "fragment",
    [
        "¿Cómo quieres distribuir los sabores?",
        "¿De qué sabor o sabores te gustaría?",
        "¿Cómo lo prefieres?",
        "Ejemplos: 3 mango y 3 uva",
        "¿Puedes especificar el tamaño?",
        "¿Cuántos de cada sabor?",
    ],
)
def test_clarification_phrase_short_circuits_structured_data(fragment):
    text = f'{fragment}\n{{"items":[{{"product_id":1,"sabor_id":1,"quantity":6,"total_price_cents":21000}}]}}'

    result = parse_order_response(text)

    assert result.status is ParseStatus.NEEDS_CLARIFICATION
    assert result.needs_clarification
    assert result.items == ()


def test_reply_without_marker_is_empty():
    result = parse_order_response("Tenemos JUMEX y BIDA en varios tamaños.")

    assert result.status is ParseStatus.EMPTY
    assert result.items == ()


@pytest.mark.parametrize(
    "text",
    [
        None,
        123,
        "",
        "   ",
        '{"items"',
        '{"items": nul',
        '{"items": [1, "a", null]}',
        '{"items": {"product_id": 1}}',
        '{"items": [{"product_id": "x", "quantity": 2, "total_price_cents": 10}]}',
        '{"items": [{"product_id": 1, "quantity": 0, "total_price_cents": 10}]}',
        '{"items": [{"product_id": 1, "quantity": -3, "total_price_cents": 10}]}',
        '{"items": [{"product_id": 1, "quantity": 2, "total_price": "abc"}]}',
        '{"items": [{"quantity": 2, "total_price_cents": 10}]}',
        '{"items": [[[[[[[[',
        "}}]] {\"items\": ]]]",
    ],
)
def test_malformed_input_never_raises(text):
    result = parse_order_response(text)

    assert result.status is ParseStatus.EMPTY
    assert result.items == ()


def test_missing_closing_brace_is_repaired():
    text = 'Listo\n{"items":[{"product_id":1,"sabor_id":3,"quantity":6,"total_price_cents":21000}]'

    result = parse_order_response(text)

    assert result.status is ParseStatus.OK
    assert result.items[0].flavor_id == 3


def test_trailing_chatter_after_block_is_ignored():
    text = 'Hecho {"items":[{"product_id":1,"quantity":6,"total_price_cents":21000}]} ¡gracias! }'

    result = parse_order_response(text)

    assert [item.subtotal_cents for item in result.items] == [21000]


def test_invalid_entries_are_dropped_but_valid_ones_kept():
    text = (
        '{"items":['
        '{"product_id":1,"sabor_id":1,"quantity":3,"total_price_cents":10500},'
        '{"product_id":1,"sabor_id":2,"quantity":0,"total_price_cents":10500},'
        '{"product_id":1,"sabor_id":2,"quantity":3}'
        "]}"
    )

    result = parse_order_response(text)

    assert [item.flavor_id for item in result.items] == [1]
    assert result.skipped_items == 2


def test_remove_operation_without_price_gets_zero_subtotal():
    text = '{"items":[{"product_id":1,"sabor_id":1,"quantity":3,"operation":"REMOVE"}]}'

    result = parse_order_response(text)

    assert result.items[0].operation == "remove"
    assert result.items[0].subtotal_cents == 0


def test_marker_nested_inside_a_block_is_not_read_twice():
    text = '{"items":[{"product_id":1,"quantity":6,"total_price_cents":21000,"meta":{"items":[]}}]}'

    result = parse_order_response(text)

    assert len(result.items) == 1


def test_split_response_text_returns_prose_before_first_block():
    text = '¡Listo! Agregado JUMEX LB 460.\n```json\n{"items":[{"product_id":1}]}\n```'

    assert split_response_text(text) == "¡Listo! Agregado JUMEX LB 460."
    assert split_response_text("Solo texto.") == "Solo texto."
    assert split_response_text(None) == ""
