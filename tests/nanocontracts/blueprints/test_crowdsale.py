import random
from datetime import datetime, timezone
from typing import Optional

from owlsale.conf import get_global_settings
from owlsale.nanocontracts.asset_ledger import TransferFailed
from owlsale.nanocontracts.blueprints.crowdsale import (
    AboveMaximum,
    AlreadyFinalized,
    BelowMinimum,
    Buy,
    Crowdsale,
    CrowdsaleErrors,
    Finalize,
    InsufficientPayment,
    InsufficientSupply,
    InvalidParameters,
    InvalidPrice,
    NotWhitelisted,
    SaleClosed,
)
from owlsale.nanocontracts.blueprints.token import InsufficientBalance, Token
from owlsale.nanocontracts.context import Context
from owlsale.nanocontracts.ownership import OwnershipTransferred, Unauthorized
from owlsale.nanocontracts.types import Address, NCDepositAction, TokenUid
from tests.nanocontracts.blueprints.unittest import BlueprintTestCase

settings = get_global_settings()
NATIVE_UID = TokenUid(settings.NATIVE_TOKEN_UID)
SCALE = 10**settings.TOKEN_DECIMALS

MAX_SUPPLY = 1_000_000


def tokens(n: int) -> int:
    return n * SCALE


ether = tokens


def start_of_month(timestamp: int, months_ahead: int) -> int:
    """Timestamp of the first second of the month `months_ahead` away from `timestamp`."""
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    month_index = dt.year * 12 + (dt.month - 1) + months_ahead
    year, month = divmod(month_index, 12)
    return int(datetime(year, month + 1, 1, tzinfo=timezone.utc).timestamp())


class CrowdsaleTestCase(BlueprintTestCase):
    """Test suite for the Crowdsale blueprint contract."""

    def setUp(self):
        super().setUp()

        self.token_blueprint_id = self._register_blueprint_class(Token)
        self.blueprint_id = self._register_blueprint_class(Crowdsale)
        self.token_id = self.gen_random_contract_id()
        self.contract_id = self.gen_random_contract_id()

        self.owner_address = self.gen_random_address()
        self.user_address = self.gen_random_address()
        self.runner.mint_native(self.user_address, ether(100_000))

        # Default sale parameters
        self.price = ether(1)
        self.max_tokens = tokens(MAX_SUPPLY)
        self.deadline = start_of_month(self.now, 1)
        self.min_contribution = tokens(10)
        self.max_contribution = tokens(1000)

    def _create_token(self) -> None:
        ctx = self.create_context(caller_id=self.owner_address)
        self.runner.create_contract(
            self.token_id, self.token_blueprint_id, ctx, "OWL Token", "OWL", MAX_SUPPLY
        )

    def _initialize_sale(self, params: Optional[dict] = None, fund: bool = True) -> None:
        """Deploy the token and the sale, then move the whole supply to the sale."""
        if params is None:
            params = {}

        if not self.runner.has_contract(self.token_id):
            self._create_token()

        ctx = self.create_context(caller_id=self.owner_address)
        self.runner.create_contract(
            self.contract_id,
            self.blueprint_id,
            ctx,
            self.token_id,
            params.get("price", self.price),
            params.get("max_tokens", self.max_tokens),
            params.get("deadline", self.deadline),
            params.get("min_contribution", self.min_contribution),
            params.get("max_contribution", self.max_contribution),
        )

        if fund:
            fund_ctx = self.create_context(caller_id=self.owner_address)
            self.runner.call_public_method(
                self.token_id, "transfer", fund_ctx, self.contract_id, tokens(MAX_SUPPLY)
            )

    def _payment_context(
        self, value: int, address: Optional[Address] = None, timestamp: Optional[int] = None
    ) -> Context:
        actions = [NCDepositAction(token_uid=NATIVE_UID, amount=value)] if value > 0 else []
        return self.create_context(
            actions=actions,
            caller_id=address if address is not None else self.user_address,
            timestamp=timestamp,
        )

    def _whitelist(self, address: Address) -> None:
        ctx = self.create_context(caller_id=self.owner_address)
        self.runner.call_public_method(self.contract_id, "whitelist_address", ctx, address)

    def _buy(
        self,
        amount: int,
        value: int,
        address: Optional[Address] = None,
        timestamp: Optional[int] = None,
    ) -> None:
        ctx = self._payment_context(value, address, timestamp)
        self.runner.call_public_method(self.contract_id, "buy_tokens", ctx, amount)

    def _send(self, value: int, address: Optional[Address] = None, timestamp: Optional[int] = None) -> None:
        ctx = self._payment_context(value, address, timestamp)
        self.runner.send_value(self.contract_id, ctx)

    def _finalize(self, caller: Optional[Address] = None) -> None:
        ctx = self.create_context(caller_id=caller if caller is not None else self.owner_address)
        self.runner.call_public_method(self.contract_id, "finalize", ctx)

    def _token_balance(self, owner) -> int:
        return self.runner.call_view_method(self.token_id, "balance_of", owner)

    def _sale_events(self) -> list:
        return [record.event for record in self.runner.get_events(self.contract_id)]

    def _snapshot_state(self) -> tuple:
        contract = self.get_readonly_contract(self.contract_id)
        assert isinstance(contract, Crowdsale)
        return (
            contract.tokens_sold,
            self._token_balance(self.contract_id),
            self._token_balance(self.user_address),
            self.runner.get_native_balance(self.contract_id),
            self.runner.get_native_balance(self.user_address),
            len(self.runner.get_events()),
        )

    # Deployment

    def test_initialize(self):
        """Test contract initialization with valid parameters."""
        self._initialize_sale()

        contract = self.get_readonly_contract(self.contract_id)
        assert isinstance(contract, Crowdsale)
        self.assertEqual(contract.token, self.token_id)
        self.assertEqual(contract.price, self.price)
        self.assertEqual(contract.max_tokens, self.max_tokens)
        self.assertEqual(contract.deadline, self.deadline)
        self.assertEqual(contract.min_contribution, self.min_contribution)
        self.assertEqual(contract.max_contribution, self.max_contribution)
        self.assertEqual(contract.tokens_sold, 0)
        self.assertEqual(contract.owner, self.owner_address)
        self.assertFalse(contract.finalized)

    def test_sends_tokens_to_crowdsale(self):
        self._initialize_sale()
        self.assertEqual(self._token_balance(self.contract_id), tokens(MAX_SUPPLY))
        self.assertEqual(self._token_balance(self.owner_address), 0)

    def test_views(self):
        self._initialize_sale()
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_price"), ether(1))
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_token"), self.token_id)
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_tokens_sold"), 0)
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_owner"), self.owner_address)
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_cost", tokens(10)), ether(10))

    def test_initialize_invalid_params(self):
        """Test initialization with invalid parameters."""
        self._create_token()

        with self.assertRaises(InvalidPrice):
            self._initialize_sale({"price": 0})
        self.assertFalse(self.runner.has_contract(self.contract_id))

        with self.assertRaises(InvalidParameters):
            self._initialize_sale({"max_tokens": 0})

        with self.assertRaises(InvalidParameters):
            self._initialize_sale({"min_contribution": tokens(1001)})

        self.assertFalse(self.runner.has_contract(self.contract_id))

    def test_sale_info(self):
        self._initialize_sale()
        self._whitelist(self.user_address)
        self._buy(tokens(10), ether(10))

        info = self.runner.call_view_method(self.contract_id, "get_sale_info", self.now)
        self.assertEqual(info.token, self.token_id.hex())
        self.assertEqual(info.owner, self.owner_address.hex())
        self.assertEqual(info.price, ether(1))
        self.assertEqual(info.tokens_sold, tokens(10))
        self.assertEqual(info.native_balance, ether(10))
        self.assertTrue(info.is_open)
        self.assertFalse(info.finalized)

        info = self.runner.call_view_method(self.contract_id, "get_sale_info", self.deadline)
        self.assertFalse(info.is_open)

    # Buying tokens

    def test_buy_tokens(self):
        """Whitelisted buyer paying the exact cost receives the tokens."""
        self._initialize_sale()
        self._whitelist(self.user_address)
        amount = tokens(10)

        self._buy(amount, ether(10))

        self.assertEqual(self._token_balance(self.contract_id), tokens(999_990))
        self.assertEqual(self._token_balance(self.user_address), amount)
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_tokens_sold"), amount)
        self.assertEqual(self.runner.get_native_balance(self.contract_id), ether(10))
        self.assertEqual(self.runner.get_native_balance(self.user_address), ether(100_000 - 10))
        self.assertEqual(self._sale_events()[-1], Buy(amount=amount, buyer=self.user_address))

    def test_buy_tokens_any_amount_in_range(self):
        """Every amount within the contribution bounds can be bought at its cost."""
        self._initialize_sale()
        rng = random.Random(1234)
        expected_sold = 0

        for _ in range(25):
            buyer = self.gen_random_address()
            self.runner.mint_native(buyer, ether(1000))
            self._whitelist(buyer)

            amount = rng.randint(self.min_contribution, self.max_contribution)
            cost = self.runner.call_view_method(self.contract_id, "get_cost", amount)
            self._buy(amount, cost, address=buyer)
            expected_sold += amount

            self.assertEqual(self._token_balance(buyer), amount)
            contract = self.get_readonly_contract(self.contract_id)
            assert isinstance(contract, Crowdsale)
            self.assertEqual(contract.tokens_sold, expected_sold)

        self.assertEqual(self._token_balance(self.contract_id), tokens(MAX_SUPPLY) - expected_sold)

    def test_buy_tokens_fractional_price(self):
        """Price of 0.025 per token."""
        self._initialize_sale({"price": ether(1) // 40})
        self._whitelist(self.user_address)

        with self.assertRaises(InsufficientPayment):
            self._buy(tokens(10), ether(10) // 40 - 1)

        self._buy(tokens(10), ether(10) // 40)
        self.assertEqual(self._token_balance(self.user_address), tokens(10))

    def test_buy_tokens_overpayment_is_kept(self):
        self._initialize_sale()
        self._whitelist(self.user_address)

        self._buy(tokens(10), ether(15))

        self.assertEqual(self._token_balance(self.user_address), tokens(10))
        self.assertEqual(self.runner.get_native_balance(self.contract_id), ether(15))

    def test_buy_tokens_insufficient_payment(self):
        self._initialize_sale()
        self._whitelist(self.user_address)
        before = self._snapshot_state()

        with self.assertRaises(InsufficientPayment) as cm:
            self._buy(tokens(10), 0)
        self.assertEqual(str(cm.exception), CrowdsaleErrors.INSUFFICIENT_PAYMENT)

        with self.assertRaises(InsufficientPayment):
            self._buy(tokens(10), ether(10) - 1)

        self.assertEqual(self._snapshot_state(), before)

    def test_buy_tokens_not_whitelisted(self):
        """Non-whitelisted callers are rejected whatever they pay, and keep their money."""
        self._initialize_sale()
        before = self._snapshot_state()

        with self.assertRaises(NotWhitelisted) as cm:
            self._buy(tokens(10), 0)
        self.assertEqual(str(cm.exception), CrowdsaleErrors.NOT_WHITELISTED)

        with self.assertRaises(NotWhitelisted):
            self._buy(tokens(10), ether(10))

        self.assertEqual(self._snapshot_state(), before)

    def test_contribution_bounds(self):
        self._initialize_sale()
        self._whitelist(self.user_address)
        before = self._snapshot_state()

        with self.assertRaises(BelowMinimum) as cm:
            self._buy(tokens(9), ether(9))
        self.assertEqual(str(cm.exception), CrowdsaleErrors.BELOW_MIN)

        with self.assertRaises(AboveMaximum) as cm:
            self._buy(tokens(1001), ether(1001))
        self.assertEqual(str(cm.exception), CrowdsaleErrors.ABOVE_MAX)

        with self.assertRaises(BelowMinimum):
            self._buy(self.min_contribution - 1, ether(10))

        with self.assertRaises(AboveMaximum):
            self._buy(self.max_contribution + 1, ether(1001))

        self.assertEqual(self._snapshot_state(), before)

        # Both bounds are inclusive
        self._buy(self.min_contribution, ether(10))
        self._buy(self.max_contribution, ether(1000))
        self.assertEqual(self._token_balance(self.user_address), tokens(1010))

    def test_buy_tokens_insufficient_supply(self):
        self._initialize_sale({"max_tokens": tokens(15)})
        self._whitelist(self.user_address)

        self._buy(tokens(10), ether(10))
        with self.assertRaises(InsufficientSupply):
            self._buy(tokens(10), ether(10))

        contract = self.get_readonly_contract(self.contract_id)
        assert isinstance(contract, Crowdsale)
        self.assertEqual(contract.tokens_sold, tokens(10))

    def test_buy_tokens_unfunded_sale(self):
        """The ledger refusing the transfer reverts the whole purchase."""
        self._initialize_sale(fund=False)
        self._whitelist(self.user_address)
        before = self._snapshot_state()

        with self.assertRaises(TransferFailed) as cm:
            self._buy(tokens(10), ether(10))
        self.assertIsInstance(cm.exception.__cause__, InsufficientBalance)

        self.assertEqual(self._snapshot_state(), before)

    # Sending native currency

    def test_send_value(self):
        self._initialize_sale()
        self._whitelist(self.user_address)

        self._send(ether(10))

        self.assertEqual(self.runner.get_native_balance(self.contract_id), ether(10))
        self.assertEqual(self._token_balance(self.user_address), tokens(10))
        self.assertEqual(self._sale_events()[-1], Buy(amount=tokens(10), buyer=self.user_address))

    def test_send_value_uses_current_price(self):
        self._initialize_sale({"price": ether(2)})
        self._whitelist(self.user_address)

        self._send(ether(30))

        self.assertEqual(self._token_balance(self.user_address), tokens(15))

    def test_send_value_not_whitelisted(self):
        self._initialize_sale()
        before = self._snapshot_state()

        with self.assertRaises(NotWhitelisted):
            self._send(ether(10))

        self.assertEqual(self._snapshot_state(), before)

    def test_send_value_to_plain_bytes_id(self):
        """A sale id given as plain bytes still goes through the sale's checks."""
        self._initialize_sale()
        before = self._snapshot_state()
        ctx = self._payment_context(ether(10))

        with self.assertRaises(NotWhitelisted):
            self.runner.send_value(bytes(self.contract_id), ctx)

        self.assertEqual(self._snapshot_state(), before)

        self._whitelist(self.user_address)
        self.runner.send_value(bytes(self.contract_id), self._payment_context(ether(10)))

        self.assertEqual(self._token_balance(self.user_address), tokens(10))
        self.assertEqual(self.runner.get_native_balance(self.contract_id), ether(10))

    def test_send_value_bounds(self):
        self._initialize_sale()
        self._whitelist(self.user_address)

        with self.assertRaises(BelowMinimum):
            self._send(ether(9))
        with self.assertRaises(AboveMaximum):
            self._send(ether(1001))
        with self.assertRaises(BelowMinimum):
            self._send(0)

    # Updating price

    def test_set_price(self):
        self._initialize_sale()
        ctx = self.create_context(caller_id=self.owner_address)

        self.runner.call_public_method(self.contract_id, "set_price", ctx, ether(2))

        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_price"), ether(2))

        self._whitelist(self.user_address)
        with self.assertRaises(InsufficientPayment):
            self._buy(tokens(10), ether(10))
        self._buy(tokens(10), ether(20))

    def test_set_price_non_owner(self):
        self._initialize_sale()
        ctx = self.create_context(caller_id=self.user_address)

        with self.assertRaises(Unauthorized):
            self.runner.call_public_method(self.contract_id, "set_price", ctx, ether(2))

        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_price"), ether(1))

    def test_set_price_zero(self):
        self._initialize_sale()
        ctx = self.create_context(caller_id=self.owner_address)

        with self.assertRaises(InvalidPrice):
            self.runner.call_public_method(self.contract_id, "set_price", ctx, 0)

        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_price"), ether(1))

    # Whitelist

    def test_whitelist_address(self):
        self._initialize_sale()
        self.assertFalse(
            self.runner.call_view_method(self.contract_id, "is_whitelisted", self.user_address)
        )

        self._whitelist(self.user_address)

        self.assertTrue(
            self.runner.call_view_method(self.contract_id, "is_whitelisted", self.user_address)
        )
        contract = self.get_readonly_contract(self.contract_id)
        assert isinstance(contract, Crowdsale)
        self.assertTrue(contract.whitelist[self.user_address])

    def test_whitelist_address_is_idempotent(self):
        self._initialize_sale()

        self._whitelist(self.user_address)
        self._whitelist(self.user_address)

        self.assertTrue(
            self.runner.call_view_method(self.contract_id, "is_whitelisted", self.user_address)
        )

    def test_whitelist_address_non_owner(self):
        self._initialize_sale()
        ctx = self.create_context(caller_id=self.user_address)

        with self.assertRaises(Unauthorized):
            self.runner.call_public_method(
                self.contract_id, "whitelist_address", ctx, self.user_address
            )

        self.assertFalse(
            self.runner.call_view_method(self.contract_id, "is_whitelisted", self.user_address)
        )

    # Finalizing

    def test_finalize(self):
        self._initialize_sale()
        self._whitelist(self.user_address)
        self._buy(tokens(10), ether(10))

        self._finalize()

        self.assertEqual(self._token_balance(self.contract_id), 0)
        self.assertEqual(self._token_balance(self.owner_address), tokens(999_990))
        self.assertEqual(self.runner.get_native_balance(self.contract_id), 0)
        self.assertEqual(self.runner.get_native_balance(self.owner_address), ether(10))
        self.assertEqual(
            self._sale_events()[-1],
            Finalize(amount=tokens(10), value=ether(10), returned=tokens(999_990)),
        )

        contract = self.get_readonly_contract(self.contract_id)
        assert isinstance(contract, Crowdsale)
        self.assertTrue(contract.finalized)
        self.assertEqual(contract.tokens_sold, tokens(10))

    def test_finalize_without_sales(self):
        self._initialize_sale()

        self._finalize()

        self.assertEqual(self._token_balance(self.owner_address), tokens(MAX_SUPPLY))
        self.assertEqual(self.runner.get_native_balance(self.owner_address), 0)
        self.assertEqual(
            self._sale_events()[-1], Finalize(amount=0, value=0, returned=tokens(MAX_SUPPLY))
        )

    def test_finalize_non_owner(self):
        self._initialize_sale()

        with self.assertRaises(Unauthorized):
            self._finalize(caller=self.user_address)

        self.assertEqual(self._token_balance(self.contract_id), tokens(MAX_SUPPLY))

    def test_finalize_twice(self):
        self._initialize_sale()
        self._finalize()
        events_before = len(self._sale_events())

        with self.assertRaises(AlreadyFinalized):
            self._finalize()

        self.assertEqual(len(self._sale_events()), events_before)

    def test_buy_after_finalize(self):
        self._initialize_sale()
        self._whitelist(self.user_address)
        self._finalize()

        with self.assertRaises(SaleClosed) as cm:
            self._buy(tokens(10), ether(10))
        self.assertEqual(str(cm.exception), CrowdsaleErrors.SALE_FINALIZED)

        with self.assertRaises(SaleClosed):
            self._send(ether(10))

    # Deadline

    def test_buy_before_deadline(self):
        self._initialize_sale({"deadline": start_of_month(self.now, 1)})
        self._whitelist(self.user_address)

        self._buy(tokens(10), ether(10), timestamp=self.deadline - 1)

        self.assertEqual(self.runner.get_native_balance(self.contract_id), ether(10))

    def test_buy_after_deadline(self):
        self._initialize_sale({"deadline": start_of_month(self.now, -1)})
        self._whitelist(self.user_address)
        before = self._snapshot_state()

        with self.assertRaises(SaleClosed) as cm:
            self._buy(tokens(10), ether(10))
        self.assertEqual(str(cm.exception), CrowdsaleErrors.SALE_CLOSED)

        with self.assertRaises(SaleClosed):
            self._send(ether(10))

        self.assertEqual(self._snapshot_state(), before)

    def test_buy_at_deadline(self):
        self._initialize_sale()
        self._whitelist(self.user_address)

        with self.assertRaises(SaleClosed):
            self._buy(tokens(10), ether(10), timestamp=self.deadline)

        self.assertTrue(self.runner.call_view_method(self.contract_id, "is_open", self.deadline - 1))
        self.assertFalse(self.runner.call_view_method(self.contract_id, "is_open", self.deadline))

    def test_closed_sale_can_still_be_finalized(self):
        self._initialize_sale()
        self._whitelist(self.user_address)
        self._buy(tokens(10), ether(10))

        ctx = self.create_context(caller_id=self.owner_address, timestamp=self.deadline + 3600)
        self.runner.call_public_method(self.contract_id, "finalize", ctx)

        self.assertEqual(self.runner.get_native_balance(self.owner_address), ether(10))

    # Ownership

    def test_transfer_ownership(self):
        self._initialize_sale()
        new_owner = self.gen_random_address()
        ctx = self.create_context(caller_id=self.owner_address)

        self.runner.call_public_method(self.contract_id, "transfer_ownership", ctx, new_owner)

        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_owner"), new_owner)
        self.assertEqual(
            self._sale_events()[-1],
            OwnershipTransferred(previous_owner=self.owner_address, new_owner=new_owner),
        )

        with self.assertRaises(Unauthorized):
            self._finalize(caller=self.owner_address)

        self._finalize(caller=new_owner)
        self.assertEqual(self._token_balance(new_owner), tokens(MAX_SUPPLY))

    def test_transfer_ownership_non_owner(self):
        self._initialize_sale()
        ctx = self.create_context(caller_id=self.user_address)

        with self.assertRaises(Unauthorized):
            self.runner.call_public_method(
                self.contract_id, "transfer_ownership", ctx, self.user_address
            )

        self.assertEqual(
            self.runner.call_view_method(self.contract_id, "get_owner"), self.owner_address
        )

    def test_independent_sales(self):
        """Two sales in the same runner do not share whitelist or counters."""
        self._initialize_sale()
        other_id = self.gen_random_contract_id()
        ctx = self.create_context(caller_id=self.owner_address)
        self.runner.create_contract(
            other_id,
            self.blueprint_id,
            ctx,
            self.token_id,
            ether(3),
            tokens(100),
            self.deadline,
            tokens(1),
            tokens(10),
        )

        self._whitelist(self.user_address)

        self.assertFalse(self.runner.call_view_method(other_id, "is_whitelisted", self.user_address))
        self.assertEqual(self.runner.call_view_method(other_id, "get_price"), ether(3))
        self.assertEqual(self.runner.call_view_method(self.contract_id, "get_price"), ether(1))
