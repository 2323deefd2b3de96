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

from owlsale.nanocontracts.blueprint import Blueprint
from owlsale.nanocontracts.context import BlockInfo, Context
from owlsale.nanocontracts.exception import NCFail
from owlsale.nanocontracts.runner import NCEventRecord, Runner
from owlsale.nanocontracts.types import fallback, public, view

__all__ = [
    'BlockInfo',
    'Blueprint',
    'Context',
    'NCEventRecord',
    'NCFail',
    'Runner',
    'fallback',
    'public',
    'view',
]
