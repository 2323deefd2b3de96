# Copyright 2025 Hathor Labs
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import copy
from typing import Any, Callable, Optional

from owlsale.nanocontracts.exception import NCInsufficientFunds, NCInvalidAction, NCViewMethodError
from owlsale.nanocontracts.types import ContractId

_NOT_SET = object()


class NCContractStorage:
    """Field storage of a single contract.

    `on_access` is called with the contract id before every read or write, so the runner
    can snapshot the storage the first time a call frame touches it.
    """

    def __init__(
        self,
        contract_id: ContractId,
        on_access: Optional[Callable[[ContractId], None]] = None,
    ) -> None:
        self.contract_id = contract_id
        self._attrs: dict[str, Any] = {}
        self._on_access = on_access

    def _touch(self) -> None:
        if self._on_access is not None:
            self._on_access(self.contract_id)

    def get(self, key: str, default: Any = _NOT_SET) -> Any:
        self._touch()
        try:
            return self._attrs[key]
        except KeyError:
            if default is _NOT_SET:
                raise
            return default

    def put(self, key: str, value: Any) -> None:
        self._touch()
        self._attrs[key] = value

    def has(self, key: str) -> bool:
        self._touch()
        return key in self._attrs

    def dump(self) -> dict[str, Any]:
        return copy.deepcopy(self._attrs)

    def load(self, attrs: dict[str, Any]) -> None:
        self._attrs = attrs


class NCReadOnlyStorage:
    """Read-only view over a contract storage, used by views and inspection handles.

    Assigning a field raises `NCViewMethodError`. Values are handed out as deep copies,
    so changing a container field in place only changes the copy: the change is dropped
    without an error and the contract state stays as it was.
    """

    def __init__(self, storage: NCContractStorage) -> None:
        self._storage = storage
        self.contract_id = storage.contract_id

    def get(self, key: str, default: Any = _NOT_SET) -> Any:
        return copy.deepcopy(self._storage.get(key, default))

    def has(self, key: str) -> bool:
        return self._storage.has(key)

    def put(self, key: str, value: Any) -> None:
        raise NCViewMethodError(f'cannot set `{key}` on a read-only storage')


class NCNativeBalances:
    """Native currency balances of accounts and contracts."""

    def __init__(self) -> None:
        self._balances: dict[bytes, int] = {}

    def get_balance(self, owner: bytes) -> int:
        return self._balances.get(bytes(owner), 0)

    def credit(self, owner: bytes, amount: int) -> None:
        if amount < 0:
            raise NCInvalidAction(f'invalid amount: {amount}')
        key = bytes(owner)
        self._balances[key] = self._balances.get(key, 0) + amount

    def debit(self, owner: bytes, amount: int) -> None:
        if amount < 0:
            raise NCInvalidAction(f'invalid amount: {amount}')
        key = bytes(owner)
        balance = self._balances.get(key, 0)
        if balance < amount:
            raise NCInsufficientFunds(f'insufficient funds: balance {balance}, needed {amount}')
        self._balances[key] = balance - amount

    def dump(self) -> dict[bytes, int]:
        return dict(self._balances)

    def load(self, balances: dict[bytes, int]) -> None:
        self._balances = balances
