"""
HTTP surface for the offer pricing service.

Exposes offer create/read/update/delete, a manual sweep trigger and product
reads over the lifecycle controller.
"""

from api.main import app

__all__ = ["app"]
