"""Booking services.

Each operation runs in a single database transaction: the affected batch
rows are locked, the seat ledger is checked, bookings are written and the
batch's cached participant counter is reconciled before commit. Domain
events collected on the way are published after the commit.
"""
