# SPDX-License-Identifier: Apache-2.0

"""
Routes package - API blueprints for agencies, switch requests and statistics.
"""
