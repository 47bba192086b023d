"""
Settlement Kernel

Shared infrastructure for the lease revenue settlement engine:
- Declarative ORM base with UUID keys and Decimal money columns
- Transactional session scopes (one document, one transaction)
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Locked-counter invoice number allocation
"""

__version__ = "0.1.0"
