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

from owlsale.nanocontracts.blueprint_env import BlueprintEnvironment
from owlsale.nanocontracts.exception import NCFail
from owlsale.nanocontracts.types import Amount, CallerId, ContractId


class TransferFailed(NCFail):
    """Raised when the asset ledger does not complete a transfer."""
    pass


class AssetLedgerHandle:
    """Access to an external fungible token contract.

    Only the balance query and the transfer are used. Anything other than a successful
    transfer is reported as `TransferFailed`, with the ledger's own failure as its cause.
    """

    def __init__(self, syscall: BlueprintEnvironment, token_id: ContractId) -> None:
        self.syscall = syscall
        self.token_id = token_id

    def balance_of(self, owner: CallerId) -> Amount:
        return Amount(self.syscall.call_view_method(self.token_id, 'balance_of', owner))

    def transfer(self, to: CallerId, amount: Amount) -> None:
        try:
            success = self.syscall.call_public_method(self.token_id, 'transfer', [], to, amount)
        except NCFail as e:
            raise TransferFailed(f'Token transfer of {amount} failed: {e}') from e
        if not success:
            raise TransferFailed(f'Token transfer of {amount} was rejected by the ledger')
