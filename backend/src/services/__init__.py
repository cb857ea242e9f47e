"""Services package for the template catalog API.

Implementation modules live in ``services/services``; the catalog service is
also registered as ``services.template_service`` for shorter imports.
"""

from importlib import import_module
import sys

_SERVICE_MODULES = ("template_service",)

for _name in _SERVICE_MODULES:
    sys.modules[f"{__name__}.{_name}"] = import_module(f".services.{_name}", __name__)
