# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Chautari switch platform.

This package contains pure business logic with no side effects: filter
construction, agency ranking, the switch request transition table and
request statistics.
"""
