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

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional

from twisted.web.resource import Resource

from owlsale.nanocontracts.blueprints.crowdsale import Crowdsale, CrowdsaleSaleInfo
from owlsale.nanocontracts.types import Address, ContractId
from owlsale.utils.api import ErrorResponse, QueryParams, Response, set_cors

if TYPE_CHECKING:
    from twisted.web.http import Request

    from owlsale.nanocontracts.runner import Runner

logger = logging.getLogger(__name__)


class CrowdsaleStateResource(Resource):
    """ Implements a web server GET API to read the state of a crowdsale contract.

    Amounts are returned as decimal strings, since they do not fit in a JSON number.
    """
    isLeaf = True

    def __init__(self, runner: Runner, clock: Optional[Callable[[], float]] = None) -> None:
        super().__init__()
        self.runner = runner
        self.clock = clock if clock is not None else time.time

    def _error(self, request: Request, code: int, message: str) -> bytes:
        logger.debug('rejected crowdsale state request (%d): %s', code, message)
        request.setResponseCode(code)
        return ErrorResponse(success=False, error=message).json_dumpb()

    def render_GET(self, request: Request) -> bytes:
        request.setHeader(b'content-type', b'application/json; charset=utf-8')
        set_cors(request, 'GET')

        params = CrowdsaleStateParams.from_request(request)
        if isinstance(params, ErrorResponse):
            return self._error(request, 400, params.error)

        try:
            contract_id = ContractId(bytes.fromhex(params.id))
        except ValueError:
            return self._error(request, 400, f'Invalid id: {params.id}')

        if not self.runner.has_contract(contract_id):
            return self._error(request, 404, f'Contract not found: {params.id}')

        if not issubclass(self.runner.get_blueprint_class(contract_id), Crowdsale):
            return self._error(request, 400, f'Contract is not a crowdsale: {params.id}')

        address: Optional[Address] = None
        if params.address is not None:
            try:
                address = Address(bytes.fromhex(params.address))
            except ValueError:
                return self._error(request, 400, f'Invalid address: {params.address}')

        timestamp = params.timestamp if params.timestamp is not None else int(self.clock())
        sale_info: CrowdsaleSaleInfo = self.runner.call_view_method(contract_id, 'get_sale_info', timestamp)

        whitelisted: Optional[bool] = None
        if address is not None:
            whitelisted = self.runner.call_view_method(contract_id, 'is_whitelisted', address)

        response = CrowdsaleStateResponse(
            id=params.id,
            timestamp=timestamp,
            token=sale_info.token,
            owner=sale_info.owner,
            price=str(sale_info.price),
            max_tokens=str(sale_info.max_tokens),
            tokens_sold=str(sale_info.tokens_sold),
            deadline=sale_info.deadline,
            min_contribution=str(sale_info.min_contribution),
            max_contribution=str(sale_info.max_contribution),
            is_open=sale_info.is_open,
            finalized=sale_info.finalized,
            native_balance=str(sale_info.native_balance),
            whitelisted=whitelisted,
        )
        return response.json_dumpb()


class CrowdsaleStateParams(QueryParams):
    id: str
    address: Optional[str] = None
    timestamp: Optional[int] = None


class CrowdsaleStateResponse(Response):
    success: bool = True
    id: str
    timestamp: int
    token: str
    owner: str
    price: str
    max_tokens: str
    tokens_sold: str
    deadline: int
    min_contribution: str
    max_contribution: str
    is_open: bool
    finalized: bool
    native_balance: str
    whitelisted: Optional[bool] = None
