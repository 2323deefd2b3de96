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

class NCFail(Exception):
    """Raised by blueprint methods to reject a call. The whole call is reverted."""
    pass


class NCInsufficientFunds(NCFail):
    pass


class NCForbiddenAction(NCFail):
    """Raised when an action is attached to a method that does not accept it."""
    pass


class NCInvalidAction(NCFail):
    pass


class NCMethodNotFound(NCFail):
    pass


class NCInvalidMethodCall(NCFail):
    pass


class NCViewMethodError(NCFail):
    """Raised when a view method tries to change state."""
    pass


class NCRecursionError(NCFail):
    pass


class NanoContractDoesNotExist(NCFail):
    pass


class NCContractAlreadyExists(NCFail):
    pass


class BlueprintDoesNotExist(NCFail):
    pass
