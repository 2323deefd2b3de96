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

"""Single-owner authorization.

Privileged blueprint methods call `require_owner` before touching any state:

    @public
    def set_price(self, ctx: Context, new_price: Amount) -> None:
        require_owner(ctx.caller_id, self.owner)
        ...
"""

from typing import NamedTuple

from owlsale.nanocontracts.exception import NCFail
from owlsale.nanocontracts.types import CallerId


class Unauthorized(NCFail):
    """Raised when a privileged method is called by someone other than the owner."""
    pass


class OwnershipTransferred(NamedTuple):
    previous_owner: CallerId
    new_owner: CallerId


def require_owner(caller_id: CallerId, owner: CallerId) -> None:
    if caller_id != owner:
        raise Unauthorized('Caller is not the owner')
