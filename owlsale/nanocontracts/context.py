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

from typing import NamedTuple, Sequence

from owlsale.nanocontracts.exception import NCFail
from owlsale.nanocontracts.types import CallerId, NCDepositAction, TokenUid


class BlockInfo(NamedTuple):
    hash: bytes
    timestamp: int
    height: int


class Context:
    """Execution context of a call: who is calling, when, and what is attached to it."""

    __slots__ = ('_caller_id', '_block', '_actions')

    def __init__(self, caller_id: CallerId, block: BlockInfo, actions: Sequence[NCDepositAction] = ()) -> None:
        object.__setattr__(self, '_caller_id', caller_id)
        object.__setattr__(self, '_block', block)
        object.__setattr__(self, '_actions', tuple(actions))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError('Context is immutable')

    @property
    def caller_id(self) -> CallerId:
        return self._caller_id

    @property
    def block(self) -> BlockInfo:
        return self._block

    @property
    def actions(self) -> tuple[NCDepositAction, ...]:
        return self._actions

    @property
    def value(self) -> int:
        """Total amount of native currency attached to this call.

        The runner only accepts deposits of the native token, so every action counts.
        """
        return sum(action.amount for action in self._actions)

    def get_single_action(self, token_uid: TokenUid) -> NCDepositAction:
        matches = [action for action in self._actions if action.token_uid == token_uid]
        if len(matches) != 1:
            raise NCFail(f'expected exactly one action for token {token_uid.hex()}')
        return matches[0]

    def for_nested_call(self, caller_id: CallerId, actions: Sequence[NCDepositAction]) -> 'Context':
        return Context(caller_id, self._block, actions)

    def __repr__(self) -> str:
        return (
            f'Context(caller_id={self._caller_id!r}, timestamp={self._block.timestamp}, '
            f'actions={list(self._actions)!r})'
        )
