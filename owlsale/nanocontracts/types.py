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

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NewType, Optional, TypeVar, Union, overload


class Address(bytes):
    """Identifier of an externally owned account."""
    __slots__ = ()

    def __repr__(self) -> str:
        return f'Address({self.hex()})'


class ContractId(bytes):
    """Identifier of a deployed contract."""
    __slots__ = ()

    def __repr__(self) -> str:
        return f'ContractId({self.hex()})'


class BlueprintId(bytes):
    __slots__ = ()


class TokenUid(bytes):
    __slots__ = ()


CallerId = Union[Address, ContractId]

Amount = NewType('Amount', int)
Timestamp = NewType('Timestamp', int)


@dataclass(frozen=True, slots=True)
class NCDepositAction:
    """Native currency attached to a call."""
    token_uid: TokenUid
    amount: int

    @property
    def name(self) -> str:
        return 'deposit'


class NCMethodType(Enum):
    PUBLIC = 'public'
    VIEW = 'view'
    FALLBACK = 'fallback'


NC_METHOD_TYPE_ATTR = '__nc_method_type'
NC_ALLOW_DEPOSIT_ATTR = '__nc_allow_deposit'

T = TypeVar('T', bound=Callable[..., Any])


def _mark(fn: T, method_type: NCMethodType, allow_deposit: bool) -> T:
    setattr(fn, NC_METHOD_TYPE_ATTR, method_type)
    setattr(fn, NC_ALLOW_DEPOSIT_ATTR, allow_deposit)
    return fn


@overload
def public(fn: T) -> T: ...


@overload
def public(*, allow_deposit: bool = False) -> Callable[[T], T]: ...


def public(fn: Optional[T] = None, *, allow_deposit: bool = False) -> Any:
    """Mark a blueprint method as callable by transactions.

    Usable bare (`@public`) or with options (`@public(allow_deposit=True)`).
    """
    def decorator(f: T) -> T:
        return _mark(f, NCMethodType.PUBLIC, allow_deposit)

    if fn is not None:
        return decorator(fn)
    return decorator


def view(fn: T) -> T:
    """Mark a blueprint method as a read-only query."""
    return _mark(fn, NCMethodType.VIEW, False)


@overload
def fallback(fn: T) -> T: ...


@overload
def fallback(*, allow_deposit: bool = True) -> Callable[[T], T]: ...


def fallback(fn: Optional[T] = None, *, allow_deposit: bool = True) -> Any:
    """Mark the method that handles plain payments sent to the contract."""
    def decorator(f: T) -> T:
        return _mark(f, NCMethodType.FALLBACK, allow_deposit)

    if fn is not None:
        return decorator(fn)
    return decorator


def get_method_type(fn: Any) -> Optional[NCMethodType]:
    return getattr(fn, NC_METHOD_TYPE_ATTR, None)


def is_deposit_allowed(fn: Any) -> bool:
    return bool(getattr(fn, NC_ALLOW_DEPOSIT_ATTR, False))
