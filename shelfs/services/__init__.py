"""Shelfs - Services Package

This package contains the domain services wrapping the in-memory stores:
- User service (accounts, role upgrade)
- Book service (definitions and copies)
- Loan service (issue / return, loan cap)
- Auth service (session and capability checks)
"""
