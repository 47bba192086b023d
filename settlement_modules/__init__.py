"""
Settlement Modules.

Domain modules on top of the settlement kernel.  Each module contains:
- Domain models (the nouns)
- Pure calculators
- Workflows (state machines)
- Configuration schemas
- ORM persistence and a service facade

Modules:
- lease_revenue: land-lease revenue sharing, advance and final credit notes
"""
