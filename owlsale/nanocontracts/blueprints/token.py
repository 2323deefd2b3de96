from typing import NamedTuple

from owlsale import (
    Amount,
    Blueprint,
    CallerId,
    Context,
    NCFail,
    public,
    view,
)
from owlsale.conf import get_global_settings

settings = get_global_settings()


class TokenInfo(NamedTuple):
    """General token information."""

    name: str
    symbol: str
    decimals: int
    total_supply: int


class Transfer(NamedTuple):
    sender: CallerId
    to: CallerId
    amount: int


class InsufficientBalance(NCFail):
    pass


class InvalidAmount(NCFail):
    pass


class Token(Blueprint):
    """Fixed-supply fungible token. The whole supply is minted to the creator."""

    name: str
    symbol: str
    decimals: int
    total_supply: Amount
    balances: dict[CallerId, Amount]

    @public
    def initialize(self, ctx: Context, name: str, symbol: str, max_supply: int) -> None:
        """Create the token, minting `max_supply` whole units to the caller."""
        if not name or not symbol:
            raise NCFail("Name and symbol are required")
        if max_supply <= 0:
            raise InvalidAmount("Max supply must be positive")

        self.name = name
        self.symbol = symbol
        self.decimals = settings.TOKEN_DECIMALS
        self.total_supply = Amount(max_supply * 10**self.decimals)
        self.balances = {ctx.caller_id: self.total_supply}

    @public
    def transfer(self, ctx: Context, to: CallerId, amount: Amount) -> bool:
        """Move `amount` base units from the caller to `to`."""
        if amount < 0:
            raise InvalidAmount("Amount cannot be negative")

        sender = ctx.caller_id
        balance = self.balances.get(sender, Amount(0))
        if balance < amount:
            raise InsufficientBalance(
                f"Insufficient balance. Has {balance}, needs {amount}."
            )

        self.balances[sender] = Amount(balance - amount)
        self.balances[to] = Amount(self.balances.get(to, Amount(0)) + amount)
        self.syscall.emit_event(Transfer(sender=sender, to=to, amount=amount))
        return True

    @view
    def balance_of(self, owner: CallerId) -> Amount:
        return self.balances.get(owner, Amount(0))

    @view
    def get_total_supply(self) -> Amount:
        return self.total_supply

    @view
    def get_token_info(self) -> TokenInfo:
        return TokenInfo(
            name=self.name,
            symbol=self.symbol,
            decimals=self.decimals,
            total_supply=self.total_supply,
        )
