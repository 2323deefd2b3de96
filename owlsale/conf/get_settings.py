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

import importlib
import logging
import os
from typing import Optional

from owlsale.conf.settings import OwlSaleSettings

logger = logging.getLogger(__name__)

CONFIG_MODULE_ENV = 'OWLSALE_CONFIG_MODULE'
DEFAULT_CONFIG_MODULE = 'owlsale.conf.localnet'

_settings: Optional[OwlSaleSettings] = None
_settings_module: Optional[str] = None


def get_global_settings() -> OwlSaleSettings:
    """Return the settings selected by the `OWLSALE_CONFIG_MODULE` environment variable.

    The module is imported once; asking again with a different variable value is an error,
    since blueprints capture their constants at import time.
    """
    global _settings, _settings_module

    module_name = os.environ.get(CONFIG_MODULE_ENV, DEFAULT_CONFIG_MODULE)
    if _settings is not None:
        if module_name != _settings_module:
            raise RuntimeError(
                f'settings already loaded from {_settings_module}, cannot switch to {module_name}'
            )
        return _settings

    settings = load_settings_module(module_name)
    logger.info('loaded settings for network %s from %s', settings.NETWORK_NAME, module_name)
    _settings = settings
    _settings_module = module_name
    return settings


def load_settings_module(module_name: str) -> OwlSaleSettings:
    """Import `module_name` and return its `SETTINGS` object."""
    module = importlib.import_module(module_name)
    settings = getattr(module, 'SETTINGS', None)
    if not isinstance(settings, OwlSaleSettings):
        raise TypeError(f'{module_name}.SETTINGS must be an OwlSaleSettings instance')
    return settings
