"""auth/ -- Credential lifecycle for worldkeeper.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from world/. world/ imports from auth/ (it shares the
users table), not the other way around.
"""
