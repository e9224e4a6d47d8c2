"""Lending Desk - library loans with admin approval

This package contains:
- API endpoints (api.py)
- Lending workflow over catalog, loans and requests (library.py)
- Accounts and role checks (accounts.py)
- CLI interface (main.py)
- Records (records.py)
- JSON collection storage (storage.py)
"""
