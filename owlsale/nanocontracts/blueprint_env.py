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

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence

from owlsale.nanocontracts.exception import NCViewMethodError
from owlsale.nanocontracts.types import Amount, CallerId, ContractId, NCDepositAction

if TYPE_CHECKING:
    from owlsale.nanocontracts.context import Context
    from owlsale.nanocontracts.runner import Runner


class BlueprintEnvironment:
    """System calls available to a blueprint through `self.syscall`."""

    __slots__ = ('_runner', '_contract_id', '_ctx')

    def __init__(self, runner: Runner, contract_id: ContractId, ctx: Optional[Context]) -> None:
        self._runner = runner
        self._contract_id = contract_id
        # None when running a view
        self._ctx = ctx

    @property
    def is_read_only(self) -> bool:
        return self._ctx is None

    def _check_writable(self, operation: str) -> Context:
        if self._ctx is None:
            raise NCViewMethodError(f'`{operation}` is not allowed in a view method')
        return self._ctx

    def get_contract_id(self) -> ContractId:
        return self._contract_id

    def get_current_balance(self) -> Amount:
        """Native currency held by this contract."""
        return Amount(self._runner.get_native_balance(self._contract_id))

    def transfer_native(self, to: CallerId, amount: int) -> None:
        self._check_writable('transfer_native')
        self._runner.transfer_native(self._contract_id, to, amount)

    def call_public_method(
        self,
        contract_id: ContractId,
        method_name: str,
        actions: Sequence[NCDepositAction],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        ctx = self._check_writable('call_public_method')
        nested_ctx = ctx.for_nested_call(self._contract_id, actions)
        return self._runner.call_public_method(contract_id, method_name, nested_ctx, *args, **kwargs)

    def call_view_method(self, contract_id: ContractId, method_name: str, *args: Any, **kwargs: Any) -> Any:
        return self._runner.call_view_method(contract_id, method_name, *args, **kwargs)

    def emit_event(self, event: tuple) -> None:
        self._check_writable('emit_event')
        self._runner.emit_event(self._contract_id, event)
