# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains authentication and error handling components for the
Chautari switch API.
"""
