"""Shelfs - Lightweight Library Management

This package contains the core application modules including:
- Domain records (models.py)
- In-memory stores (repositories.py)
- User, book, loan and auth services (services/)
- Snapshot persistence (persistence.py)
- Library facade and default seed data (library.py, seed.py)
- CLI interface (cli.py) and HTTP API (api.py)
"""

__version__ = "1.0.0"
