"""
Tenant Membership Crawler
=========================
Starting from a few seed accounts, walks the groups, directory roles and
administrative units they belong to, and the other users sharing those
groups, and writes the result as flat CSV tables.

The crawler only reads the directory. No tenant object is ever modified.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
