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

import inspect
from typing import TYPE_CHECKING, Any, ClassVar, Optional, Union

from owlsale.nanocontracts.types import NCMethodType, get_method_type

if TYPE_CHECKING:
    from owlsale.nanocontracts.blueprint_env import BlueprintEnvironment
    from owlsale.nanocontracts.storage import NCContractStorage, NCReadOnlyStorage

_BLUEPRINT_ATTRS = frozenset({'syscall', '_storage'})


class Blueprint:
    """Base class for every blueprint.

    Annotated class attributes declare the contract fields. Their values live in the
    contract storage, so they survive between calls and are restored when a call fails:

        class Counter(Blueprint):
            count: int

            @public
            def initialize(self, ctx: Context) -> None:
                self.count = 0
    """

    _nc_fields: ClassVar[dict[str, Any]] = {}
    _nc_fallback: ClassVar[Optional[str]] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        fields: dict[str, Any] = dict(getattr(cls, '_nc_fields', {}))
        for name, annotation in inspect.get_annotations(cls).items():
            if name.startswith('_'):
                continue
            fields[name] = annotation
        cls._nc_fields = fields

        fallbacks = [
            name for name, attr in vars(cls).items()
            if get_method_type(attr) is NCMethodType.FALLBACK
        ]
        if len(fallbacks) > 1:
            raise TypeError(f'{cls.__name__} declares more than one fallback method: {fallbacks}')
        if fallbacks:
            cls._nc_fallback = fallbacks[0]

    def __init__(
        self,
        env: BlueprintEnvironment,
        storage: Union[NCContractStorage, NCReadOnlyStorage],
    ) -> None:
        object.__setattr__(self, 'syscall', env)
        object.__setattr__(self, '_storage', storage)

    def __getattr__(self, name: str) -> Any:
        if name in type(self)._nc_fields:
            try:
                return self._storage.get(name)
            except KeyError:
                raise AttributeError(f'field `{name}` of {type(self).__name__} is not set') from None
        raise AttributeError(f'{type(self).__name__!r} object has no attribute {name!r}')

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _BLUEPRINT_ATTRS:
            raise AttributeError(f'cannot replace `{name}`')
        if name not in type(self)._nc_fields:
            raise AttributeError(f'cannot set undeclared field `{name}` on {type(self).__name__}')
        self._storage.put(name, value)
