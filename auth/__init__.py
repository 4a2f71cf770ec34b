"""auth/ -- Accounts, OTP verification and session tokens for the asset tracker.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or assets/.
api/ imports from auth/, not the other way around.
"""
