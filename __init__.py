# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
RunAlert
Desktop alerts when a speedrunner you follow is on a fast pace.
"""

try:
    from importlib.metadata import version
    __version__ = version("runalert")
except Exception:
    __version__ = "0.1.0"
