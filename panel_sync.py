#!/usr/bin/env python3
"""Thin loader delegating CLI logic to the interface layer."""

import sys

from core.desktop.devtools.interface import panel_app as _panel_app

if __name__ != "__main__":
    # When imported, expose the full interface implementation directly.
    sys.modules[__name__] = _panel_app
else:
    sys.exit(_panel_app.main())
