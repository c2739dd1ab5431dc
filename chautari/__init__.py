# SPDX-License-Identifier: Apache-2.0

"""
Chautari switch API: home-care agency discovery and agency switch requests.
"""

__version__ = "1.0.0"
