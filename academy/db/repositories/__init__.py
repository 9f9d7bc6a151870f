"""
Per-domain repository modules for database access.

Plain functions taking a `Session` first; they add, commit and refresh so
routers stay free of persistence details. Business rules live in
`academy.services`.
"""
