from contextlib import contextmanager
from typing import Iterator, NamedTuple

from owlsale import (
    Address,
    Amount,
    Blueprint,
    CallerId,
    Context,
    ContractId,
    NCFail,
    Timestamp,
    fallback,
    public,
    view,
)
from owlsale.conf import get_global_settings
from owlsale.nanocontracts.asset_ledger import AssetLedgerHandle
from owlsale.nanocontracts.ownership import OwnershipTransferred, require_owner

settings = get_global_settings()

# Fixed-point denominator of the asset: price is the cost of SCALE base units
SCALE = 10**settings.TOKEN_DECIMALS


class CrowdsaleSaleInfo(NamedTuple):
    """General sale information."""

    token: str
    owner: str
    price: int
    max_tokens: int
    tokens_sold: int
    deadline: int
    min_contribution: int
    max_contribution: int
    is_open: bool
    finalized: bool
    native_balance: int


class Buy(NamedTuple):
    amount: int
    buyer: CallerId


class Finalize(NamedTuple):
    """Emitted once, when the owner closes the sale.

    `value` and `returned` are the amounts moved to the owner. `amount` is not a
    transfer: it is the total number of tokens sold over the life of the sale.
    """

    amount: int  # Tokens sold over the whole sale
    value: int  # Native currency swept to the owner
    returned: int  # Unsold tokens swept to the owner


class CrowdsaleErrors:
    """Common error messages"""

    NOT_WHITELISTED = "Caller is not on the whitelist"
    SALE_CLOSED = "The crowdsale is closed"
    SALE_FINALIZED = "The crowdsale is finalized"
    BELOW_MIN = "Tokens amount is below minimum required"
    ABOVE_MAX = "Tokens amount is above maximum allowed"
    INSUFFICIENT_PAYMENT = "Insufficient payment"
    INSUFFICIENT_SUPPLY = "Not enough tokens left for sale"
    INVALID_PRICE = "Price must be positive"
    ALREADY_FINALIZED = "The crowdsale is already finalized"
    REENTRANCY = "Reentrant call"


class NotWhitelisted(NCFail):
    pass


class SaleClosed(NCFail):
    pass


class BelowMinimum(NCFail):
    pass


class AboveMaximum(NCFail):
    pass


class InsufficientPayment(NCFail):
    pass


class InsufficientSupply(NCFail):
    pass


class InvalidPrice(NCFail):
    pass


class InvalidParameters(NCFail):
    pass


class AlreadyFinalized(NCFail):
    pass


class Reentrancy(NCFail):
    pass


class Crowdsale(Blueprint):
    """Whitelisted token sale at an owner-controlled price, closing at a fixed deadline.

    The token ledger is a separate contract. The sale must hold the tokens it sells,
    so the owner transfers them to the sale contract after creating it.
    """

    # Sale configuration
    token: ContractId  # Ledger contract of the token being sold
    max_tokens: Amount  # Tokens available for sale
    deadline: Timestamp  # Purchases are rejected from this timestamp on
    min_contribution: Amount  # Minimum tokens per purchase
    max_contribution: Amount  # Maximum tokens per purchase

    # Sale state
    price: Amount  # Native currency per SCALE token units
    tokens_sold: Amount
    finalized: bool
    locked: bool  # Held while a purchase or finalization is running

    # Access control
    owner: CallerId
    whitelist: dict[CallerId, bool]

    @public
    def initialize(
        self,
        ctx: Context,
        token: ContractId,
        price: Amount,
        max_tokens: Amount,
        deadline: Timestamp,
        min_contribution: Amount,
        max_contribution: Amount,
    ) -> None:
        """Initialize the sale. The caller becomes the owner."""
        if price <= 0:
            raise InvalidPrice(CrowdsaleErrors.INVALID_PRICE)
        if max_tokens <= 0:
            raise InvalidParameters("Max tokens must be positive")
        if min_contribution < 0 or min_contribution > max_contribution:
            raise InvalidParameters("Invalid contribution bounds")

        self.token = token
        self.max_tokens = max_tokens
        self.deadline = deadline
        self.min_contribution = min_contribution
        self.max_contribution = max_contribution

        self.price = price
        self.tokens_sold = Amount(0)
        self.finalized = False
        self.locked = False

        self.owner = ctx.caller_id
        self.whitelist = {}

    @public(allow_deposit=True)
    def buy_tokens(self, ctx: Context, amount: Amount) -> None:
        """Buy `amount` token units, paying with the attached native currency."""
        self._buy(ctx, amount)

    @fallback
    def receive(self, ctx: Context) -> None:
        """Buy as many tokens as the attached payment covers."""
        self._buy(ctx, self._tokens_for_value(ctx.value))

    @public
    def set_price(self, ctx: Context, new_price: Amount) -> None:
        """Update the token price (owner only)."""
        require_owner(ctx.caller_id, self.owner)
        if new_price <= 0:
            raise InvalidPrice(CrowdsaleErrors.INVALID_PRICE)
        self.price = new_price

    @public
    def whitelist_address(self, ctx: Context, address: CallerId) -> None:
        """Allow `address` to buy tokens (owner only)."""
        require_owner(ctx.caller_id, self.owner)
        self.whitelist[address] = True

    @public
    def finalize(self, ctx: Context) -> None:
        """Send every unsold token and all collected currency to the owner (owner only)."""
        require_owner(ctx.caller_id, self.owner)
        if self.finalized:
            raise AlreadyFinalized(CrowdsaleErrors.ALREADY_FINALIZED)

        with self._nonreentrant():
            ledger = self._ledger()
            remaining = ledger.balance_of(self.syscall.get_contract_id())
            value = self.syscall.get_current_balance()
            self.finalized = True

            if remaining > 0:
                ledger.transfer(self.owner, remaining)
            if value > 0:
                self.syscall.transfer_native(self.owner, value)

            self.syscall.emit_event(
                Finalize(amount=self.tokens_sold, value=value, returned=remaining)
            )

    @public
    def transfer_ownership(self, ctx: Context, new_owner: CallerId) -> None:
        """Hand the sale over to `new_owner` (owner only)."""
        require_owner(ctx.caller_id, self.owner)
        if not new_owner:
            raise InvalidParameters("New owner cannot be empty")
        previous_owner = self.owner
        self.owner = new_owner
        self.syscall.emit_event(
            OwnershipTransferred(previous_owner=previous_owner, new_owner=new_owner)
        )

    def _buy(self, ctx: Context, amount: Amount) -> None:
        with self._nonreentrant():
            buyer = ctx.caller_id
            if not self.whitelist.get(buyer, False):
                raise NotWhitelisted(CrowdsaleErrors.NOT_WHITELISTED)
            if self.finalized:
                raise SaleClosed(CrowdsaleErrors.SALE_FINALIZED)
            if not self._is_open_at(ctx.block.timestamp):
                raise SaleClosed(CrowdsaleErrors.SALE_CLOSED)
            if amount < self.min_contribution:
                raise BelowMinimum(CrowdsaleErrors.BELOW_MIN)
            if amount > self.max_contribution:
                raise AboveMaximum(CrowdsaleErrors.ABOVE_MAX)
            if ctx.value < self._calculate_cost(amount):
                raise InsufficientPayment(CrowdsaleErrors.INSUFFICIENT_PAYMENT)
            if self.tokens_sold + amount > self.max_tokens:
                raise InsufficientSupply(CrowdsaleErrors.INSUFFICIENT_SUPPLY)

            # Bookkeeping happens before control leaves for the ledger contract
            self.tokens_sold = Amount(self.tokens_sold + amount)
            self._ledger().transfer(buyer, amount)

            self.syscall.emit_event(Buy(amount=amount, buyer=buyer))

    @contextmanager
    def _nonreentrant(self) -> Iterator[None]:
        if self.locked:
            raise Reentrancy(CrowdsaleErrors.REENTRANCY)
        self.locked = True
        try:
            yield
        finally:
            self.locked = False

    def _ledger(self) -> AssetLedgerHandle:
        return AssetLedgerHandle(self.syscall, self.token)

    def _calculate_cost(self, amount: Amount) -> Amount:
        """Native currency owed for `amount` token units."""
        return Amount(amount * self.price // SCALE)

    def _tokens_for_value(self, value: int) -> Amount:
        """Token units bought by a payment of `value`."""
        return Amount(value * SCALE // self.price)

    def _is_open_at(self, timestamp: int) -> bool:
        return timestamp < self.deadline and not self.finalized

    @view
    def get_price(self) -> Amount:
        return self.price

    @view
    def get_tokens_sold(self) -> Amount:
        return self.tokens_sold

    @view
    def get_token(self) -> ContractId:
        return self.token

    @view
    def get_owner(self) -> CallerId:
        return self.owner

    @view
    def is_whitelisted(self, address: CallerId) -> bool:
        return self.whitelist.get(address, False)

    @view
    def get_cost(self, amount: Amount) -> Amount:
        return self._calculate_cost(amount)

    @view
    def is_open(self, timestamp: Timestamp) -> bool:
        return self._is_open_at(timestamp)

    @view
    def get_sale_info(self, timestamp: Timestamp) -> CrowdsaleSaleInfo:
        """Get general sale information as seen at `timestamp`."""
        return CrowdsaleSaleInfo(
            token=self.token.hex(),
            owner=self.owner.hex(),
            price=self.price,
            max_tokens=self.max_tokens,
            tokens_sold=self.tokens_sold,
            deadline=self.deadline,
            min_contribution=self.min_contribution,
            max_contribution=self.max_contribution,
            is_open=self._is_open_at(timestamp),
            finalized=self.finalized,
            native_balance=self.syscall.get_current_balance(),
        )
