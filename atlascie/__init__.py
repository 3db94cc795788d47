"""
ATLAS Community Information Exchange
====================================

Business core of a case-management portal for community-health
coordinators: enrollee rosters, risk-tier dashboards, a searchable
resource directory and a referral workflow between coordinators and
partner organizations.

The package decides permissions, filters resource eligibility, drives
the referral lifecycle and computes population analytics.  Page layout,
chart rendering and report export belong to the presentation layer.
"""

__version__ = "0.1.0"
