"""
Agri Kernel - produce payout core

Domain values and entities, typed errors, structured logging and the
storage contracts for:
- Produce contributions and their grading
- Orders and fee-adjusted payouts
- Per-member compulsory savings with annual interest rollover
"""

__version__ = "0.1.0"
