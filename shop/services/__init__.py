"""
Shop services: checkout initiation, settlement and its side effects
(commission ledger, stock adjustment, confirmation email).
"""
