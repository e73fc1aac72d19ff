"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
witsync - Work Item Tracking Sync
Idempotent migration of work items, classification nodes, test plans and
shared queries between two work-tracking projects.
"""

__version__ = "0.1.0"
