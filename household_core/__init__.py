"""
Household Core - Source Package

Client-side core of a shared household finance app: which household the
user is acting in, which accounts they may use there, how a shared
expense is split, and keeping cached server data coherent across
household switches and mutations.

DESIGN PRINCIPLES:
1. The selected household only changes on an explicit user action
2. Fail early, fail visibly
3. No silent corrections
4. Every step must be auditable
5. Transport and storage are swappable
"""

__version__ = "1.0.0"
__author__ = "Household Core Team"
