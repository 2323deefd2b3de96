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

import hashlib
import logging
from typing import Any, NamedTuple, Optional

from owlsale.conf.get_settings import get_global_settings
from owlsale.conf.settings import OwlSaleSettings
from owlsale.nanocontracts.blueprint import Blueprint
from owlsale.nanocontracts.blueprint_env import BlueprintEnvironment
from owlsale.nanocontracts.context import Context
from owlsale.nanocontracts.exception import (
    BlueprintDoesNotExist,
    NanoContractDoesNotExist,
    NCContractAlreadyExists,
    NCFail,
    NCForbiddenAction,
    NCInvalidAction,
    NCInvalidMethodCall,
    NCMethodNotFound,
    NCRecursionError,
)
from owlsale.nanocontracts.storage import NCContractStorage, NCNativeBalances, NCReadOnlyStorage
from owlsale.nanocontracts.types import (
    BlueprintId,
    CallerId,
    ContractId,
    NCMethodType,
    get_method_type,
    is_deposit_allowed,
)

logger = logging.getLogger(__name__)


class NCEventRecord(NamedTuple):
    contract_id: ContractId
    event: tuple


class _Snapshot(NamedTuple):
    # Filled lazily with the storage of each contract the frame touches
    storages: dict[ContractId, dict[str, Any]]
    native_balances: dict[bytes, int]


class Runner:
    """Executes blueprint methods against in-memory contract state.

    Every call runs in its own frame. When a frame raises, the storages of all contracts
    and the native balances are restored to what they were when the frame started, and
    the events emitted inside it are dropped. The exception is always re-raised.

    A contract storage is only copied the first time a frame reads or writes it. When a
    frame succeeds, its copies are handed to the parent frame for every contract the
    parent had not touched yet.
    """

    def __init__(self, settings: Optional[OwlSaleSettings] = None) -> None:
        self.settings = settings if settings is not None else get_global_settings()
        self._blueprints: dict[BlueprintId, type[Blueprint]] = {}
        self._contracts: dict[ContractId, BlueprintId] = {}
        self._storages: dict[ContractId, NCContractStorage] = {}
        self._native = NCNativeBalances()
        self._events: list[NCEventRecord] = []
        self._call_stack: list[ContractId] = []
        self._frame_events: list[list[NCEventRecord]] = []
        self._snapshots: list[_Snapshot] = []

    def register_blueprint_class(self, blueprint_class: type[Blueprint]) -> BlueprintId:
        if not (isinstance(blueprint_class, type) and issubclass(blueprint_class, Blueprint)):
            raise TypeError(f'{blueprint_class!r} is not a Blueprint subclass')
        name = f'{blueprint_class.__module__}.{blueprint_class.__qualname__}'
        blueprint_id = BlueprintId(hashlib.sha256(name.encode('utf-8')).digest())
        self._blueprints[blueprint_id] = blueprint_class
        return blueprint_id

    def has_contract(self, contract_id: ContractId) -> bool:
        return contract_id in self._contracts

    def get_blueprint_class(self, contract_id: ContractId) -> type[Blueprint]:
        try:
            blueprint_id = self._contracts[contract_id]
        except KeyError:
            raise NanoContractDoesNotExist(contract_id.hex()) from None
        return self._blueprints[blueprint_id]

    def get_storage(self, contract_id: ContractId) -> NCContractStorage:
        try:
            return self._storages[contract_id]
        except KeyError:
            raise NanoContractDoesNotExist(contract_id.hex()) from None

    def get_readonly_contract(self, contract_id: ContractId) -> Blueprint:
        """Return a blueprint instance whose fields can be read but not written."""
        blueprint_class = self.get_blueprint_class(contract_id)
        storage = NCReadOnlyStorage(self._storages[contract_id])
        return blueprint_class(BlueprintEnvironment(self, contract_id, None), storage)

    def create_contract(
        self,
        contract_id: ContractId,
        blueprint_id: BlueprintId,
        ctx: Context,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        if contract_id in self._contracts:
            raise NCContractAlreadyExists(contract_id.hex())
        if blueprint_id not in self._blueprints:
            raise BlueprintDoesNotExist(blueprint_id.hex())

        self._contracts[contract_id] = blueprint_id
        self._storages[contract_id] = NCContractStorage(contract_id, on_access=self._on_storage_access)
        try:
            ret = self._execute(contract_id, 'initialize', ctx, args, kwargs, NCMethodType.PUBLIC)
        except Exception:
            del self._contracts[contract_id]
            del self._storages[contract_id]
            raise

        logger.info(
            'created contract %s from blueprint %s',
            contract_id.hex(),
            self._blueprints[blueprint_id].__name__,
        )
        return ret

    def call_public_method(self, contract_id: ContractId, method_name: str, ctx: Context, *args: Any,
                           **kwargs: Any) -> Any:
        if method_name == 'initialize':
            raise NCInvalidMethodCall('cannot call initialize on an existing contract')
        return self._execute(contract_id, method_name, ctx, args, kwargs, NCMethodType.PUBLIC)

    def call_view_method(self, contract_id: ContractId, method_name: str, *args: Any, **kwargs: Any) -> Any:
        blueprint_class = self.get_blueprint_class(contract_id)
        method = self._get_method(blueprint_class, method_name, NCMethodType.VIEW)
        self._check_call_depth()

        storage = NCReadOnlyStorage(self._storages[contract_id])
        blueprint = blueprint_class(BlueprintEnvironment(self, contract_id, None), storage)
        self._call_stack.append(contract_id)
        try:
            return method(blueprint, *args, **kwargs)
        finally:
            self._call_stack.pop()

    def send_value(self, to: CallerId, ctx: Context) -> None:
        """Send the native currency attached to `ctx` without calling any method.

        A contract receives it through its fallback method, which may reject it.
        """
        if self.has_contract(to):
            contract_id = ContractId(to)
            blueprint_class = self.get_blueprint_class(contract_id)
            if blueprint_class._nc_fallback is None:
                raise NCMethodNotFound(f'{blueprint_class.__name__} does not accept plain payments')
            self._execute(contract_id, blueprint_class._nc_fallback, ctx, (), {}, NCMethodType.FALLBACK)
            return

        self._validate_actions(ctx)
        self._native.debit(ctx.caller_id, ctx.value)
        self._native.credit(to, ctx.value)

    def transfer_native(self, from_id: CallerId, to: CallerId, amount: int) -> None:
        if amount <= 0:
            raise NCInvalidAction(f'invalid amount: {amount}')
        self._native.debit(from_id, amount)
        self._native.credit(to, amount)

    def mint_native(self, owner: CallerId, amount: int) -> None:
        """Create native currency out of thin air. Meant for genesis funding and tests."""
        self._native.credit(owner, amount)

    def get_native_balance(self, owner: CallerId) -> int:
        return self._native.get_balance(owner)

    def emit_event(self, contract_id: ContractId, event: tuple) -> None:
        if not self._frame_events:
            raise NCFail('events can only be emitted during a call')
        self._frame_events[-1].append(NCEventRecord(contract_id, event))

    def get_events(self, contract_id: Optional[ContractId] = None) -> list[NCEventRecord]:
        """Return the committed events, optionally only those of one contract."""
        if contract_id is None:
            return list(self._events)
        return [record for record in self._events if record.contract_id == contract_id]

    def _execute(
        self,
        contract_id: ContractId,
        method_name: str,
        ctx: Context,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        method_type: NCMethodType,
    ) -> Any:
        blueprint_class = self.get_blueprint_class(contract_id)
        method = self._get_method(blueprint_class, method_name, method_type)
        self._check_call_depth()

        snapshot = _Snapshot(storages={}, native_balances=self._native.dump())
        self._snapshots.append(snapshot)
        self._call_stack.append(contract_id)
        self._frame_events.append([])
        try:
            self._apply_actions(contract_id, method_name, method, ctx)
            blueprint = blueprint_class(BlueprintEnvironment(self, contract_id, ctx), self._storages[contract_id])
            ret = method(blueprint, ctx, *args, **kwargs)
        except Exception as e:
            self._restore(snapshot)
            self._frame_events.pop()
            logger.debug('call to %s.%s reverted: %r', blueprint_class.__name__, method_name, e)
            raise
        finally:
            self._call_stack.pop()
            self._snapshots.pop()

        if self._snapshots:
            parent = self._snapshots[-1]
            for touched_id, attrs in snapshot.storages.items():
                parent.storages.setdefault(touched_id, attrs)

        events = self._frame_events.pop()
        if self._frame_events:
            self._frame_events[-1].extend(events)
        else:
            self._events.extend(events)
        return ret

    def _get_method(self, blueprint_class: type[Blueprint], method_name: str, expected: NCMethodType) -> Any:
        method = getattr(blueprint_class, method_name, None)
        if method is None or not callable(method):
            raise NCMethodNotFound(f'{blueprint_class.__name__}.{method_name}')
        if get_method_type(method) is not expected:
            raise NCInvalidMethodCall(f'{blueprint_class.__name__}.{method_name} is not a {expected.value} method')
        return method

    def _validate_actions(self, ctx: Context) -> None:
        for action in ctx.actions:
            if action.token_uid != self.settings.NATIVE_TOKEN_UID:
                raise NCInvalidAction(f'only native deposits are supported, got token {action.token_uid.hex()}')
            if action.amount <= 0:
                raise NCInvalidAction(f'invalid deposit amount: {action.amount}')

    def _apply_actions(self, contract_id: ContractId, method_name: str, method: Any, ctx: Context) -> None:
        if not ctx.actions:
            return
        if not is_deposit_allowed(method):
            raise NCForbiddenAction(f'`{method_name}` does not accept deposits')
        self._validate_actions(ctx)
        for action in ctx.actions:
            self._native.debit(ctx.caller_id, action.amount)
            self._native.credit(contract_id, action.amount)

    def _check_call_depth(self) -> None:
        if len(self._call_stack) >= self.settings.MAX_CALL_DEPTH:
            raise NCRecursionError(f'maximum call depth of {self.settings.MAX_CALL_DEPTH} reached')

    def _on_storage_access(self, contract_id: ContractId) -> None:
        if not self._snapshots:
            return
        storages = self._snapshots[-1].storages
        if contract_id not in storages:
            storages[contract_id] = self._storages[contract_id].dump()

    def _restore(self, snapshot: _Snapshot) -> None:
        for contract_id, attrs in snapshot.storages.items():
            if contract_id in self._storages:
                self._storages[contract_id].load(attrs)
        self._native.load(snapshot.native_balances)
