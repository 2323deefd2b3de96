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

from pydantic import BaseModel, ConfigDict, field_validator


class OwlSaleSettings(BaseModel):
    """Network-wide constants shared by the runner and every blueprint."""

    model_config = ConfigDict(frozen=True)

    # Name of the network these settings describe.
    NETWORK_NAME: str

    # Uid used in deposit actions for the native payment currency.
    NATIVE_TOKEN_UID: bytes = b'\x00'

    NATIVE_TOKEN_SYMBOL: str = 'ETH'

    # Decimal places of fungible assets; prices are expressed per 10**TOKEN_DECIMALS base units.
    TOKEN_DECIMALS: int = 18

    # Maximum depth of nested contract calls in a single transaction.
    MAX_CALL_DEPTH: int = 16

    @field_validator('TOKEN_DECIMALS')
    @classmethod
    def _validate_token_decimals(cls, value: int) -> int:
        if not 0 <= value <= 36:
            raise ValueError('TOKEN_DECIMALS must be between 0 and 36')
        return value

    @field_validator('MAX_CALL_DEPTH')
    @classmethod
    def _validate_max_call_depth(cls, value: int) -> int:
        if value < 1:
            raise ValueError('MAX_CALL_DEPTH must be positive')
        return value

    @field_validator('NATIVE_TOKEN_UID')
    @classmethod
    def _validate_native_token_uid(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError('NATIVE_TOKEN_UID cannot be empty')
        return value
