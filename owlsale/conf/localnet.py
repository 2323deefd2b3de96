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

from owlsale.conf.settings import OwlSaleSettings

SETTINGS = OwlSaleSettings(
    NETWORK_NAME='localnet',
    NATIVE_TOKEN_UID=b'\x00',
    NATIVE_TOKEN_SYMBOL='ETH',
    TOKEN_DECIMALS=18,
    MAX_CALL_DEPTH=16,
)
