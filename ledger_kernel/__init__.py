"""
Ledger Kernel

Shared foundation for the hospital billing and pharmacy ledger:
- Integer minor-unit money arithmetic
- Typed, coded exceptions
- Structured JSON logging
- SQLAlchemy base classes, engine management and immutability guards
- Locked-counter sequences for human-readable document numbers
"""

__version__ = "0.1.0"
