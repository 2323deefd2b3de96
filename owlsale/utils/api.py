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

from typing import TYPE_CHECKING, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from typing_extensions import Self

if TYPE_CHECKING:
    from twisted.web.http import Request


class Response(BaseModel):
    """Base class of every JSON body returned by the API."""

    model_config = ConfigDict(extra='forbid')

    def json_dumpb(self) -> bytes:
        return self.model_dump_json().encode('utf-8')


class ErrorResponse(Response):
    success: bool = False
    error: str


class QueryParams(BaseModel):
    """Base class for query string parameters. Only the first value of each key is used."""

    model_config = ConfigDict(extra='ignore')

    @classmethod
    def from_request(cls, request: 'Request') -> Union[Self, ErrorResponse]:
        raw_args = request.args or {}
        args = {
            key.decode('utf-8'): values[0].decode('utf-8')
            for key, values in raw_args.items()
            if values
        }
        try:
            return cls.model_validate(args)
        except ValidationError as e:
            return ErrorResponse(error=_format_validation_error(e))


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = '.'.join(str(part) for part in item['loc'])
        messages.append(f'{location}: {item["msg"]}' if location else item['msg'])
    return '; '.join(messages)


def set_cors(request: 'Request', method: str) -> None:
    request.setHeader(b'access-control-allow-origin', b'*')
    request.setHeader(b'access-control-allow-methods', method.encode('ascii'))
    request.setHeader(b'access-control-allow-headers', b'content-type')
