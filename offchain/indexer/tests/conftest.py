import pytest

from stela_core.felt import get_selector_from_name
from stela_core.rpc import MockStarknetRPC

STELA = "0x5"

CREATE_ARGS = [
    1,  # is_borrow
    1, 0x10, 0, 1000, 0, 0, 0,  # debt
    1, 0x10, 0, 50, 0, 0, 0,  # interest
    1, 0x20, 1, 1, 0, 7, 0,  # collateral
    86400,
    1_700_000_000,
    0,
]

# get_inscription result matching CREATE_ARGS
INSCRIPTION_TERMS = [
    0,  # borrower
    0,  # lender
    86400,  # duration
    1_700_000_000,  # deadline
    0,  # signed_at
    0, 0,  # issued_debt_percentage
    0,  # is_repaid
    0,  # liquidated
    0,  # multi_lender
    1, 1, 1,  # asset counts
]


@pytest.fixture
def stela_address():
    return STELA


@pytest.fixture
def rpc():
    """Mock node that knows the terms of inscription 1."""
    mock = MockStarknetRPC()
    mock.set_call_result(STELA, "get_inscription", INSCRIPTION_TERMS)
    return mock


@pytest.fixture
def create_calldata():
    """__execute__ calldata wrapping a single create_inscription call."""
    selector = get_selector_from_name("create_inscription")
    return [1, int(STELA, 16), selector, len(CREATE_ARGS), *CREATE_ARGS]
