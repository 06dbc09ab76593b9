from tazatools.core.extractor import ParameterExtractor, tool_family
from tazatools.core.registry import Tool

CREATE = Tool("create_payment", "Create a payment")
STATUS = Tool.from_wire(
    {"name": "get_payment_status", "inputSchema": {"properties": {"payment_id": {"type": "string"}}}}
)
LISTING = Tool("list_transactions", "Recent transactions")


def test_payment_arguments():
    args = ParameterExtractor().extract(CREATE, "pay $45.50 for hosting")
    assert args == {"amount": 45.5, "currency": "USD", "description": "hosting"}


def test_payment_currency_and_no_description():
    args = ParameterExtractor().extract(CREATE, "send 100 eur to the supplier")
    assert args == {"amount": 100.0, "currency": "EUR"}


def test_payment_without_amount_omits_it():
    args = ParameterExtractor().extract(CREATE, "create a payment for the new laptop.")
    assert args == {"currency": "USD", "description": "the new laptop"}


def test_amount_ignores_digits_inside_identifier():
    args = ParameterExtractor().extract(CREATE, "charge 25 against ord_20240101xyz")
    assert args["amount"] == 25.0
    assert args["payment_id"] == "ord_20240101xyz"


def test_status_identifier():
    args = ParameterExtractor().extract(STATUS, "check payment status pay_1234567890")
    assert args == {"payment_id": "pay_1234567890"}


def test_status_identifier_field_from_schema():
    tool = Tool.from_wire({"name": "get_payout_status", "inputSchema": {"properties": {"payout_id": {}}}})
    assert ParameterExtractor().extract(tool, "status of po-0011223344 please") == {"payout_id": "po-0011223344"}


def test_identifier_without_digits():
    assert ParameterExtractor().extract(STATUS, "status of pay_abcdefghij") == {"payment_id": "pay_abcdefghij"}
    assert ParameterExtractor().extract(Tool("get_payment_status"), "status of pay_abcdefghij") == {
        "payment_id": "pay_abcdefghij"
    }


def test_marked_tokens_preferred_over_plain_words():
    ex = ParameterExtractor()
    assert ex.extract(STATUS, "internationalization status for pay_abcdefghij") == {"payment_id": "pay_abcdefghij"}
    # a plain word still qualifies when nothing better is present
    assert ex.extract(STATUS, "status of ABCDEFGHIJKL") == {"payment_id": "ABCDEFGHIJKL"}
    assert ex.extract(STATUS, "what is the status") == {}


def test_payment_ignores_plain_long_words():
    args = ParameterExtractor().extract(CREATE, "pay 30 for subscription")
    assert args == {"amount": 30.0, "currency": "USD", "description": "subscription"}


def test_amount_glued_to_currency_code():
    ex = ParameterExtractor()
    assert ex.extract(CREATE, "pay USD45") == {"amount": 45.0, "currency": "USD"}
    assert ex.extract(CREATE, "send eur12.50 to the supplier") == {"amount": 12.5, "currency": "EUR"}
    assert ex.extract(CREATE, "pay 20 sgd") == {"amount": 20.0, "currency": "SGD"}


def test_list_limit():
    ex = ParameterExtractor()
    assert ex.extract(LISTING, "List my 5 recent transactions") == {"limit": 5}
    assert ex.extract(LISTING, "show transactions") == {"limit": 10}


def test_tool_families():
    assert tool_family("list_payments") == "list"
    assert tool_family("get_payment_status") == "status"
    assert tool_family("create_checkout") == "payment"
    assert tool_family("get_balance") is None
    assert ParameterExtractor().extract(Tool("get_balance"), "balance in SGD 100") == {}
