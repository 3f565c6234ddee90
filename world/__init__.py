"""world/ -- Tenant worlds: memberships, roles and named coordinates.

Layer rule: world/ may import from auth/ (the shared users table) and core/.
auth/ never imports from world/.
"""
