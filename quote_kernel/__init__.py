"""
Quote Kernel - pricing and numbering core for quotations.

- Decimal-only money arithmetic (margin, discount, tax split)
- In-memory quotation model with always-recomputed totals
- Reserve/commit quotation numbering with compare-and-swap persistence
- Versioned per-user settings store
"""

__version__ = "0.1.0"
