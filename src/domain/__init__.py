"""Domain models and pure computations for the tax attestation service.

Ledger models, categorization rules, the fixed-point tax calculator, the
ledger commitment and the public output layout live here. Nothing in this
package performs I/O.
"""

__all__ = [
    "amounts",
    "categorization",
    "commitment",
    "ledger",
    "public_values",
    "tax",
]
