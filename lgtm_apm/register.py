"""
Import this module to start APM from environment variables alone:

    import lgtm_apm.register  # noqa: F401

or run a script under APM with `lgtm-apm run app.py`.
"""

from .telemetry import init_apm

handle = init_apm()
