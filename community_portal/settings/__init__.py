"""
Settings package for the community portal.

`DJANGO_SETTINGS_MODULE` picks the environment module: `dev` for local
management commands, `ci` for the test pipeline and `prod` for the
gunicorn/celery entrypoints.
"""

from __future__ import annotations

import os

DEFAULT_SETTINGS_MODULE = "community_portal.settings.dev"

os.environ.setdefault("DJANGO_SETTINGS_MODULE", DEFAULT_SETTINGS_MODULE)

__all__ = ["DEFAULT_SETTINGS_MODULE"]
